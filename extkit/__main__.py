"""Allow running the orchestrator as a module: python -m extkit."""

import sys

from extkit.runner import main

if __name__ == "__main__":
    sys.exit(main())
