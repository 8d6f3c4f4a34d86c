"""tutormem entry point."""

import sys

from dotenv import find_dotenv, load_dotenv

USAGE = "usage: tutormem facts <command> [options]"


def main() -> None:
    """Main entry point."""
    load_dotenv(find_dotenv(usecwd=True))

    if len(sys.argv) > 1 and sys.argv[1] == "facts":
        from .cli import run_facts_cli

        # Pass remaining args (after 'facts') to the facts CLI
        sys.exit(run_facts_cli(sys.argv[2:]))

    print(USAGE, file=sys.stderr)
    sys.exit(2)


if __name__ == "__main__":
    main()
