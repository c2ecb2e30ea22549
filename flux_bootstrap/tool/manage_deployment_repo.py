"""Flux-bootstrap manage-deployment-repo action."""

from argparse import (
    ArgumentParser,
    _SubParsersAction as SubParsersAction,
    BooleanOptionalAction,
)
import logging
import pathlib
from typing import cast

from flux_bootstrap.config import read_config
from flux_bootstrap.deployment_repo import DeploymentRepoManager, DeploymentRepoOptions

_LOGGER = logging.getLogger(__name__)


class ManageDeploymentRepoAction:
    """Flux-bootstrap manage-deployment-repo action."""

    @classmethod
    def register(
        cls, subparsers: SubParsersAction  # type: ignore[type-arg]
    ) -> ArgumentParser:
        """Register the subparser commands."""
        args = cast(
            ArgumentParser,
            subparsers.add_parser(
                "manage-deployment-repo",
                help="Render the deployment repository of an environment",
                description="""Resolves the openMCP component, renders its
                    templates and the configured providers into the deployment
                    repository, pushes the result and applies the Flux
                    Kustomizations of the environment to the cluster.""",
            ),
        )
        args.add_argument(
            "config", type=pathlib.Path, help="Path to the bootstrap configuration"
        )
        args.add_argument(
            "--git-config",
            type=pathlib.Path,
            required=True,
            help="Path to the credentials of the deployment repository",
        )
        args.add_argument(
            "--ocm-config",
            type=pathlib.Path,
            default=None,
            help="Path to the configuration passed to the ocm tool",
        )
        args.add_argument(
            "--extra-manifest-dir",
            type=pathlib.Path,
            default=None,
            help="Directory of manifests added to the repository as they are",
        )
        args.add_argument(
            "--kustomization-patches",
            type=pathlib.Path,
            default=None,
            help="Template of kustomize patches made available to the templates",
        )
        args.add_argument(
            "--kubeconfig",
            type=pathlib.Path,
            default=None,
            help="Kubeconfig of the cluster the Flux Kustomizations are applied to",
        )
        args.add_argument(
            "--push",
            type=bool,
            action=BooleanOptionalAction,
            default=True,
            help="Commit and push the changes to the deployment repository",
        )
        args.add_argument(
            "--apply",
            type=bool,
            action=BooleanOptionalAction,
            default=True,
            help="Apply the Flux Kustomizations of the environment to the cluster",
        )
        args.add_argument(
            "--print-manifests",
            type=bool,
            action=BooleanOptionalAction,
            default=False,
            help="Print the objects of the environment overlay",
        )
        args.set_defaults(cls=cls)
        return args

    async def run(  # type: ignore[no-untyped-def]
        self,
        config: pathlib.Path,
        git_config: pathlib.Path,
        ocm_config: pathlib.Path | None,
        extra_manifest_dir: pathlib.Path | None,
        kustomization_patches: pathlib.Path | None,
        kubeconfig: pathlib.Path | None,
        push: bool,
        apply: bool,
        print_manifests: bool,
        **kwargs,  # pylint: disable=unused-argument
    ) -> None:
        """Async Action implementation."""
        bootstrap_config = await read_config(config)
        manager = DeploymentRepoManager(
            bootstrap_config,
            DeploymentRepoOptions(
                git_config=git_config,
                ocm_config=ocm_config,
                extra_manifests=extra_manifest_dir,
                patches=kustomization_patches,
                kubeconfig=kubeconfig,
            ),
        )
        await manager.run(push=push, apply=apply, print_manifests=print_manifests)
        _LOGGER.info(
            "Deployment repository %s updated for environment %s",
            bootstrap_config.repository.url,
            bootstrap_config.environment,
        )
