"""
flux-bootstrap renders a GitOps deployment repository from an openMCP component.

The root component is resolved with the `ocm` tool, its Flux and openMCP
template resources are rendered for an environment together with manifests of
the configured providers, and the result is committed to the deployment
repository. The Flux Kustomizations of the environment are then applied to
the cluster so that Flux takes over from there.
"""

__all__ = [
    "config",
    "component",
    "resolver",
    "template",
    "deployment_repo",
    "exceptions",
    # Note this is exposed for CLI documentation, not to be used as a library
    "tool",
]
