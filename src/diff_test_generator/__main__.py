"""Entry point for ``python -m diff_test_generator``."""

from diff_test_generator.cli import main

if __name__ == "__main__":
    main()
