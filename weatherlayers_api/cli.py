#!/usr/bin/env python3
"""
Weather layers CLI tool.

Command-line interface for:
- Running the API server
- Inspecting forecast files before loading them as a layer

Usage:
    python -m weatherlayers_api.cli serve --port 8000
    python -m weatherlayers_api.cli inspect gfs_2024010100.grb2
"""
import argparse
import sys
from typing import List, Optional

from weatherlayers.config import settings as engine_settings
from weatherlayers.data.reader import GribReader, PygribReader
from weatherlayers.exceptions import SourceLoadError
from weatherlayers.layers.source import Source


def serve(host: str, port: int, reload: bool = False) -> None:
    """Run the API with uvicorn."""
    import uvicorn

    uvicorn.run("weatherlayers_api.main:app", host=host, port=port, reload=reload)


def inspect(paths: List[str], reader: Optional[GribReader] = None) -> int:
    """Print the forecast times and parameters a file group would load."""
    engine_settings.configure_logging()
    try:
        source = Source.load(paths, reader or PygribReader(), options=engine_settings.source_options())
    except SourceLoadError as e:
        print(f"\nERROR: {e}\n")
        return 1

    print("\n" + "=" * 60)
    print("FORECAST FILES")
    print("=" * 60)
    for name in source.file_names:
        print(f"  {name}")
    print(f"\nReference time: {source.reference_time.isoformat() if source.reference_time else '-'}")
    print(f"Forecast times: {len(source.times)}")
    for t in source.times:
        print(f"  {t.isoformat()}")
    print("\nParameters:")
    for slot in sorted(source.available_slots):
        print(f"  {slot.name}")
    print("=" * 60 + "\n")
    return 0


def main():
    from weatherlayers_api.config import settings

    parser = argparse.ArgumentParser(
        description="Weather layers CLI tool",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  Run the API server:
    python -m weatherlayers_api.cli serve --port 8000

  Inspect forecast files:
    python -m weatherlayers_api.cli inspect gfs_000.grb2 gfs_003.grb2
        """
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # serve
    serve_parser = subparsers.add_parser("serve", help="Run the API server")
    serve_parser.add_argument("--host", default=settings.api_host, help="Bind address")
    serve_parser.add_argument("--port", type=int, default=settings.api_port, help="Port")
    serve_parser.add_argument("--reload", action="store_true", help="Reload on code changes")

    # inspect
    inspect_parser = subparsers.add_parser("inspect", help="Summarise forecast files")
    inspect_parser.add_argument("paths", nargs="+", help="GRIB files forming one layer")

    args = parser.parse_args()

    if args.command == "serve":
        serve(args.host, args.port, args.reload)
    elif args.command == "inspect":
        sys.exit(inspect(args.paths))
    else:
        parser.print_help()
        sys.exit(1)


if __name__ == "__main__":
    main()
