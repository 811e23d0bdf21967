import logging
import os
import sys
from typing import Any

import structlog
from rich.console import Console

# Shared console for rich output and log lines
console = Console()


class RichConsoleRenderer:
    """
    Render structlog events on the shared rich console as
    `timestamp logger level event key=value ...`.
    An optional '_style' key overrides the line style.
    """

    def __init__(self, target: Console | None = None):
        self._console = target or console
        self._level_styles = {
            'debug': 'dim',
            'info': 'green',
            'warning': 'yellow',
            'error': 'bold red',
            'critical': 'bold magenta',
        }

    def __call__(self, logger, name, event_dict):
        # Style hint, never rendered as a key=value pair
        custom_style = event_dict.pop('_style', None)

        # Standard fields come first, in a fixed order
        event = event_dict.pop('event', '')
        log_level = event_dict.pop('level', 'info')
        logger_name = event_dict.pop('logger', 'root')
        timestamp = event_dict.pop('timestamp', '')
        exception = event_dict.pop('exception', None)
        stack_info = event_dict.pop('stack_info', None)

        parts = []
        if timestamp:
            parts.append(f"[dim]{timestamp}[/dim]")
        if logger_name:
            parts.append(f"[bold]{logger_name}[/bold]")

        # Pad the level so events line up
        level_style = self._level_styles.get(log_level, 'white')
        parts.append(f"[{level_style}]{log_level:<8}[/{level_style}]")
        parts.append(event)

        # Remaining context, including contextvars such as sbom=
        for key, value in event_dict.items():
            parts.append(f"[cyan]{key}[/cyan]=[green]{value!r}[/green]")

        final_msg = ' '.join(parts)
        if exception:
            final_msg += f"\n[red]{exception}[/red]"
        if stack_info:
            final_msg += f"\n[dim]{stack_info}[/dim]"

        self._console.print(final_msg, style=custom_style, highlight=False)

        # Nothing left for the stdlib logger to print
        raise structlog.DropEvent


def drop_style_processor(logger, method_name, event_dict):
    """Keep the console-only '_style' hint out of JSON output."""
    event_dict.pop('_style', None)
    return event_dict


def mask_secrets_processor(logger, method_name, event_dict):
    """Replace the GitHub token wherever it shows up in an event."""
    token = os.getenv('GITHUB_TOKEN')
    if not token:
        return event_dict
    for key, value in event_dict.items():
        if isinstance(value, str) and token in value:
            event_dict[key] = value.replace(token, '*****')
    return event_dict


def setup_logging(level: str = 'INFO') -> None:
    """Configure structlog once for the whole process."""
    # structlog renders the message itself; stdlib only filters by level
    logging.basicConfig(format='%(message)s', stream=sys.stdout, level=level)

    shared_processors: list[Any] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt='iso'),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
        mask_secrets_processor,
    ]

    # JSON lines in production, rich console output otherwise
    if os.getenv('ENV') == 'production':
        processors = shared_processors + [
            drop_style_processor,
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ]
    else:
        processors = shared_processors + [
            structlog.processors.format_exc_info,
            RichConsoleRenderer(),
        ]

    structlog.configure(
        processors=processors,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )
