import sys
import traceback

from garage_alerts.dev.run_app import main as run_app


def main():
    """Packaged-executable entry: run the dev CLI, keep the console open on a crash."""
    try:
        run_app(sys.argv[1:])
    except SystemExit:
        raise
    except Exception:
        traceback.print_exc()
        if getattr(sys, "frozen", False):
            input("\nPress Enter to exit...")
        sys.exit(1)


if __name__ == "__main__":
    main()
