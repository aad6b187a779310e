# branchlet/__main__.py
# Description: Allows `python -m branchlet`
#
import sys

from .cli import main_cli_runner

if __name__ == "__main__":
    sys.exit(main_cli_runner())
