"""Entry point for ``python -m nllcheck``."""

from nllcheck.main import main

if __name__ == "__main__":
    raise SystemExit(main())
