"""Entry point for ``python -m webpay``."""

import sys

from webpay.cli import main

if __name__ == "__main__":
    sys.exit(main())
