"""dicom-manifest - Command Line Interface

Loads a MADO manifest (from a URL or a local file), samples one image per
series over WADO-RS and prints the synthesized metadata.
"""

import argparse
import asyncio
import json
import sys
from pathlib import Path

from dicom_manifest.core.config import (
    LoggingConfig,
    RetrievalConfig,
    Settings,
    get_settings,
)
from dicom_manifest.core.exceptions import ManifestError
from dicom_manifest.core.pipeline import LoadResult, ManifestLoader
from dicom_manifest.core.retrieval.client import HttpxRetriever
from dicom_manifest.utils.logger import configure_logging, get_logger

logger = get_logger(__name__)


def parse_header(value: str) -> tuple[str, str]:
    """Parse a ``Name: value`` header argument.

    Raises:
        argparse.ArgumentTypeError: If there is no colon or the name is empty

    """
    name, sep, header_value = value.partition(":")
    if not sep or not name.strip():
        raise argparse.ArgumentTypeError(
            f"Header must look like 'Name: value', got {value!r}"
        )
    return name.strip(), header_value.strip()


def create_parser() -> argparse.ArgumentParser:
    """Create argument parser."""
    parser = argparse.ArgumentParser(
        prog="dicom-manifest",
        description="Synthesize study metadata from a MADO manifest",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Load a manifest whose series carry RetrieveURLs
  dicom-manifest https://pacs.example.com/manifests/study.dcm

  # Local manifest, explicit WADO-RS root and a bearer token
  dicom-manifest ./study.dcm --wado-root https://pacs.example.com/dicomweb \\
      --header "Authorization: Bearer xxx"

  # Machine-readable output
  dicom-manifest ./study.dcm --json
        """,
    )

    parser.add_argument("manifest", metavar="MANIFEST", help="Manifest URL or file path")

    retrieval_group = parser.add_argument_group("retrieval options")
    retrieval_group.add_argument(
        "--wado-root",
        metavar="URL",
        help="WADO-RS root used when the manifest carries no RetrieveURL",
    )
    retrieval_group.add_argument(
        "--wado-uri", metavar="URL", help="WADO-URI endpoint recorded on instances"
    )
    retrieval_group.add_argument(
        "--header",
        dest="headers",
        action="append",
        type=parse_header,
        default=[],
        metavar="'NAME: VALUE'",
        help="Extra request header (repeatable)",
    )
    retrieval_group.add_argument(
        "--concurrency",
        type=int,
        metavar="N",
        help="Series sampled concurrently (default: 4)",
    )

    output_group = parser.add_argument_group("output options")
    output_group.add_argument(
        "--json", action="store_true", help="Print the full result as JSON"
    )
    output_group.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Logging level",
    )
    output_group.add_argument(
        "--log-format", choices=["json", "console"], help="Log renderer"
    )

    return parser


def build_settings(args: argparse.Namespace) -> Settings:
    """Environment settings with command line overrides applied."""
    base = get_settings()

    retrieval_overrides = {
        key: value
        for key, value in (
            ("wado_root", args.wado_root),
            ("wado_uri", args.wado_uri),
            ("concurrency_limit", args.concurrency),
        )
        if value is not None
    }
    logging_overrides = {
        key: value
        for key, value in (("log_level", args.log_level), ("log_format", args.log_format))
        if value is not None
    }

    return base.model_copy(
        update={
            "retrieval": RetrievalConfig(
                **{**base.retrieval.model_dump(), **retrieval_overrides}
            ),
            "logging": LoggingConfig(**{**base.logging.model_dump(), **logging_overrides}),
        }
    )


def is_url(manifest: str) -> bool:
    return manifest.lower().startswith(("http://", "https://"))


def format_summary(result: LoadResult) -> str:
    """Human-readable load summary."""
    lines = [
        "=" * 70,
        f"  Study: {result.study_instance_uid}",
        "=" * 70,
    ]
    for series in result.series:
        instances = result.instances.get(series.series_instance_uid, [])
        consistent = sum(1 for r in instances if r.geometry_consistent)
        lines.append(
            f"  [+] {series.modality:<5} {series.series_description[:32]:<32} "
            f"{len(instances):>5} instances, {consistent} with real geometry"
        )
    for skipped in result.skipped:
        lines.append(f"  [-] {skipped.series_instance_uid}: {skipped.reason}")
    lines.append("=" * 70)
    summary = result.get_summary()
    lines.append(
        f"  {summary['series']} series, {summary['instances']} instances, "
        f"{summary['skipped']} skipped"
    )
    return "\n".join(lines)


async def run(args: argparse.Namespace, settings: Settings) -> LoadResult:
    headers = dict(args.headers)
    async with HttpxRetriever(
        timeout_seconds=settings.retrieval.timeout_seconds,
        verify_ssl=settings.retrieval.verify_ssl,
    ) as retriever:
        loader = ManifestLoader(retriever, settings=settings)
        if is_url(args.manifest):
            return await loader.load_from_url(args.manifest, headers)
        data = Path(args.manifest).read_bytes()
        return await loader.load(data, headers)


def main(argv: list[str] | None = None) -> int:
    """Entry point; returns the process exit code."""
    parser = create_parser()
    args = parser.parse_args(argv)

    settings = build_settings(args)
    configure_logging(
        log_level=settings.logging.log_level.value,
        json_format=settings.logging.log_format == "json",
    )

    if not is_url(args.manifest) and not Path(args.manifest).is_file():
        print(f"Error: Manifest file '{args.manifest}' not found", file=sys.stderr)
        return 1

    try:
        result = asyncio.run(run(args, settings))
    except ManifestError as e:
        logger.error("manifest_load_failed", error=e.message, error_code=e.error_code)
        print(f"Error: {e.message}", file=sys.stderr)
        return 1

    if args.json:
        print(json.dumps(result.to_dict(), indent=2, default=str))
    else:
        print(format_summary(result))
    return 0


if __name__ == "__main__":
    sys.exit(main())
