from __future__ import annotations

import argparse
import logging
from pathlib import Path
from typing import Sequence

from rich.console import Console
from rich.logging import RichHandler

from .config import load_config
from .errors import MockupError, RasterError
from .service import RenderService
from .textures import TextureCache, generate_fabric_texture
from .types import QualityTier, RenderRequest

logger = logging.getLogger(__name__)

EXIT_SERVER_ERROR = 1
EXIT_CLIENT_ERROR = 2


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="tote-mockup",
        description="Render tote bag mockups with a customer logo and bag color.",
    )
    parser.add_argument(
        "--dotenv",
        type=Path,
        default=None,
        help="Optional path to a .env file containing store credentials.",
    )
    parser.add_argument(
        "--assets",
        type=Path,
        default=None,
        help="Override the directory holding the tote bag art (MOCKUP_ASSETS_DIR).",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging.")
    subparsers = parser.add_subparsers(dest="command", required=True)

    for name, help_text in (
        ("generate", "Render the full-resolution mockup (2000px, JPEG quality 95)."),
        ("preview", "Render a fast preview (800px, JPEG quality 70)."),
        ("finalize", "Render the full mockup and publish it with the original logo."),
    ):
        sub = subparsers.add_parser(name, help=help_text)
        sub.add_argument("logo", type=Path, help="Path to the customer logo image.")
        sub.add_argument("--color", default=None, help="Bag color, e.g. '#1E3A8A' or 'navy'.")
        sub.add_argument("--logo-x", default=None, help="Horizontal logo offset in pixels.")
        sub.add_argument("--logo-y", default=None, help="Vertical logo offset in pixels.")
        sub.add_argument("--logo-width", default=None, help="Logo width in pixels.")
        if name == "finalize":
            sub.add_argument(
                "--local-store",
                action="store_true",
                help="Write uploads under OUTPUT_ROOT_DIR instead of Cloudinary.",
            )
            sub.add_argument(
                "--timeout",
                type=float,
                default=None,
                help="Maximum seconds to wait for both uploads.",
            )
        else:
            sub.add_argument("--output", type=Path, default=None, help="Where to write the JPEG.")

    texture = subparsers.add_parser("texture", help="Write a procedural fabric texture PNG.")
    texture.add_argument("--width", type=int, default=512)
    texture.add_argument("--height", type=int, default=512)
    texture.add_argument("--color", default="#FFFFFF")
    texture.add_argument("--type", dest="texture_type", choices=("canvas", "cotton"), default="canvas")
    texture.add_argument("--output", type=Path, default=None)

    return parser.parse_args(argv)


def _configure_logging(console: Console, verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, show_path=False)],
        force=True,
    )


def main(argv: Sequence[str] | None = None) -> int:
    args = parse_args(argv)
    console = Console(stderr=True)
    _configure_logging(console, args.verbose)

    publishing = args.command == "finalize" and not args.local_store
    try:
        config = load_config(args.dotenv, enable_cloudinary=None if publishing else False)
    except RuntimeError as exc:
        console.print(f"[red]Configuration error:[/red] {exc}")
        return EXIT_SERVER_ERROR
    if args.assets is not None:
        config.assets.root_dir = args.assets

    if args.command == "texture":
        output = args.output or config.output.root_dir / f"texture-{args.texture_type}.png"
        cache = TextureCache(config.texture_cache_size)
        try:
            data = generate_fabric_texture(args.width, args.height, args.color, args.texture_type, cache)
        except (ValueError, RasterError) as exc:
            console.print(f"[red]Texture generation failed:[/red] {exc}")
            return EXIT_CLIENT_ERROR
        output.parent.mkdir(parents=True, exist_ok=True)
        output.write_bytes(data)
        console.print(f"[green]Texture saved to[/green] {output}")
        return 0

    if not args.logo.is_file():
        console.print(f"[red]Logo file not found:[/red] {args.logo}")
        return EXIT_CLIENT_ERROR

    fields = {
        "color": args.color,
        "logoX": args.logo_x,
        "logoY": args.logo_y,
        "logoWidth": args.logo_width,
    }

    with RenderService.from_config(config, local_store=not publishing) as service:
        try:
            request = RenderRequest.from_form(fields, args.logo.read_bytes(), args.logo.name)
            if args.command == "finalize":
                published = service.render_and_publish(request, timeout=args.timeout)
                Console().print_json(data=published.to_dict())
                return 0

            if args.command == "preview":
                image_bytes = service.render_preview(request)
                default_name = "preview.jpg"
            else:
                image_bytes = service.render_mockup(request)
                default_name = "mockup.jpg"
        except MockupError as exc:
            if exc.is_client_error:
                console.print(f"[yellow]{exc.public_message}[/yellow] ({exc})")
                return EXIT_CLIENT_ERROR
            logger.error("%s failed: %s", args.command, exc)
            console.print(f"[red]{exc.public_message}[/red]")
            return EXIT_SERVER_ERROR

    output = args.output or config.output.root_dir / default_name
    output.parent.mkdir(parents=True, exist_ok=True)
    output.write_bytes(image_bytes)
    console.print(f"[green]Mockup saved to[/green] {output}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
