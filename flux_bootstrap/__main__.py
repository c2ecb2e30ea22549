"""Run the flux-bootstrap command line tool."""

from flux_bootstrap.tool.flux_bootstrap import main

if __name__ == "__main__":
    main()
