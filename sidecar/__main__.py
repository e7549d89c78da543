"""
Minimal entry point so the launcher can run as `python -m sidecar`.

Its sole responsibility is to hand control to the launcher's main function.
"""
from sidecar.main import main

if __name__ == "__main__":
    main()
