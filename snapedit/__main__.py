"""
snapedit command line
=====================

    python -m snapedit edit photo.jpg "Remove background" --retry
    python -m snapedit prompts field-log
    python -m snapedit queue-status --offline-dir ~/.snapedit/queue

Configuration is read from ~/.snapedit_config.json, then from the
environment (NANO_BANANA_API_KEY, NANO_BANANA_ENDPOINT, SNAPEDIT_OFFLINE_DIR).
Results are printed as JSON on stdout; logs go to stderr and logs/snapedit.log.
"""

import argparse
import json
import logging
import os
import sys
from pathlib import Path

from snapedit.core import config
from snapedit.core.editor import create_editor
from snapedit.core.models import EditOptions, Quality
from snapedit.core.prompts import available_contexts, get_suggested_prompts
from snapedit.core.settings import EditorConfig
from snapedit.utils.config_manager import load_config
from snapedit.utils.logger import setup_logging, shutdown_logging

logger = logging.getLogger("snapedit")


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="snapedit", description="AI image editing client")
    parser.add_argument("--log-level", default="WARNING", help="Console log level (default: WARNING)")
    parser.add_argument("--config", type=Path, default=None, help="Path to a JSON configuration file")
    parser.add_argument("--offline-dir", default=None, help="Directory holding the offline queue")
    sub = parser.add_subparsers(dest="command", required=True)

    edit = sub.add_parser("edit", help="Edit an image with a natural-language prompt")
    edit.add_argument("image", type=Path)
    edit.add_argument("prompt")
    edit.add_argument("--quality", choices=[q.value for q in Quality], default=Quality.HIGH.value)
    edit.add_argument("--iterations", type=int, default=1)
    edit.add_argument("--style", default=None)
    edit.add_argument("--no-preserve-aspect-ratio", action="store_true")
    edit.add_argument("--retry", action="store_true", help="Retry transient failures with backoff")

    prompts = sub.add_parser("prompts", help="List suggested prompts for a usage context")
    prompts.add_argument("context", choices=available_contexts())

    sub.add_parser("queue-status", help="Show the persisted offline queue")
    return parser


def _load_settings(args) -> EditorConfig:
    settings = load_config(EditorConfig(), args.config)
    env_key = os.environ.get(config.ENV_API_KEY, "").strip()
    if env_key:
        settings.api_key = env_key
    if os.environ.get(config.ENV_ENDPOINT):
        settings.endpoint = os.environ[config.ENV_ENDPOINT]
    offline_dir = args.offline_dir or os.environ.get(config.ENV_OFFLINE_DIR)
    if offline_dir:
        settings.offline_storage_dir = offline_dir
    return settings


def _print_json(data) -> None:
    json.dump(data, sys.stdout, indent=2, default=str)
    sys.stdout.write("\n")


def main(argv=None) -> int:
    args = _build_parser().parse_args(argv)
    setup_logging(console_level=getattr(logging, str(args.log_level).upper(), logging.WARNING))

    try:
        if args.command == "prompts":
            _print_json(get_suggested_prompts(args.context))
            return 0

        settings = _load_settings(args)

        if args.command == "queue-status":
            with create_editor(settings, online=False) as editor:
                _print_json(editor.get_queue_status())
            return 0

        try:
            image = args.image.read_bytes()
            options = EditOptions(
                preserve_aspect_ratio=not args.no_preserve_aspect_ratio,
                quality=args.quality,
                iterations=args.iterations,
                style=args.style,
            )
        except (OSError, ValueError) as e:
            logger.error(f"Invalid edit arguments: {e}")
            print(f"error: {e}", file=sys.stderr)
            return 2

        with create_editor(settings) as editor:
            if args.retry:
                result = editor.edit_image_with_retry(image, args.prompt, options)
            else:
                result = editor.edit_image(image, args.prompt, options)
            _print_json(result.to_dict())
        return 0 if result.success else 1
    finally:
        shutdown_logging()


if __name__ == "__main__":
    sys.exit(main())
