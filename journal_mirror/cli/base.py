"""Base utilities and context for the CLI."""

import sys
from functools import wraps

from rich.console import Console

console = Console()


class CLIContext:
    """Context object to pass around CLI state."""

    def __init__(self, verbose: bool = False, config_file: str | None = None):
        self.verbose = verbose
        self.config_file = config_file
        self.config = None

    def get_config(self):
        """Get or load the configuration (lazy-loaded)."""
        if self.config is None:
            from journal_mirror.config import ConfigManager

            self.config = ConfigManager(self.config_file)
        return self.config

    def setup_logging(self, config=None):
        """Setup logging, honoring the [logging] section when config is loaded."""
        from journal_mirror.utils.logging import init_logger

        level = "DEBUG" if self.verbose else None
        log_file = None
        if config is not None:
            section = config.get_config_section("logging")
            level = level or section.get("level") or None
            log_file = section.get("file") or None
        init_logger(level=level, log_file=log_file)


def handle_errors(func):
    """Decorator to handle common CLI errors consistently."""

    @wraps(func)
    def wrapper(ctx, *args, **kwargs):
        ctx_obj = ctx.obj
        try:
            return func(ctx, *args, **kwargs)
        except FileNotFoundError as e:
            console.print(f"[bold red][ERROR] File not found:[/bold red] {e}")
            if ctx_obj.verbose:
                console.print_exception()
            sys.exit(1)
        except ValueError as e:
            console.print(f"[bold red][ERROR] Invalid configuration:[/bold red] {e}")
            if ctx_obj.verbose:
                console.print_exception()
            sys.exit(1)
        except KeyboardInterrupt:
            console.print("\n[yellow]Interrupted by user[/yellow]")
            sys.exit(1)
        except Exception as e:
            console.print(f"[bold red][ERROR] Operation failed:[/bold red] {e}")
            if ctx_obj.verbose:
                console.print_exception()
            sys.exit(1)

    return wrapper
