"""CLI entrypoint for COSMIC extraction."""

import argparse
import asyncio
import json
import logging
import os
import sys
import warnings
from pathlib import Path

from cosmic_extractor.core.config import BatchConfig, COSMIC_PROVIDER, RoundConfig

# Suppress LiteLLM's direct prints (must be before import)
os.environ["LITELLM_LOG"] = "ERROR"

# Suppress noisy warnings before any imports
warnings.filterwarnings("ignore", message="Pydantic serializer warnings")
warnings.filterwarnings("ignore", message="PydanticSerializationUnexpectedValue")
warnings.filterwarnings("ignore", category=UserWarning, module="pydantic")
warnings.filterwarnings("ignore", message="Unclosed connection")
warnings.filterwarnings("ignore", message="Unclosed client session")
warnings.filterwarnings("ignore", category=ResourceWarning)

# Suppress noisy loggers (HTTP clients, LiteLLM internals)
for logger_name in ["httpx", "httpcore", "litellm", "LiteLLM",
                    "LiteLLM Proxy", "LiteLLM Router", "aiohttp", "asyncio"]:
    logging.getLogger(logger_name).setLevel(logging.ERROR)

import litellm  # noqa: E402 - must be after logging config
from dotenv import load_dotenv  # noqa: E402

litellm.suppress_debug_info = True

from cosmic_extractor.core.collaborators import PlainTextSource  # noqa: E402
from cosmic_extractor.core.cost_tracker import CostTracker  # noqa: E402
from cosmic_extractor.core.errors import ConfigurationError, ExhaustedAllModelsError  # noqa: E402
from cosmic_extractor.core.table_parser import parse_table  # noqa: E402
from cosmic_extractor.pydantic_models.records import FunctionDescriptor, FunctionList  # noqa: E402


def _write_json(payload: dict | list, output: str | None) -> None:
    text = json.dumps(payload, indent=2, ensure_ascii=False)
    if output is None:
        print(text)
        return
    output_path = Path(output)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    output_path.write_text(text, encoding="utf-8")
    print(f"\n[OUTPUT] {output_path}")


def _print_header(title: str, **details) -> None:
    print(f"\n{'='*50}")
    print(title)
    print(f"{'='*50}")
    for key, value in details.items():
        print(f"  {key}: {value}")
    print()


def _read_document(path: str) -> str | None:
    doc_path = Path(path)
    if not doc_path.exists():
        print(f"Error: File not found: {doc_path}")
        return None
    try:
        return PlainTextSource().read(doc_path)
    except ValueError as e:
        print(f"Error: {e}")
        return None


def load_descriptors(payload: dict | list) -> list[FunctionDescriptor]:
    """Descriptors from a functions JSON file.

    Accepts a list of descriptors, ``{"functions": [...]}`` with descriptor
    objects, or a full FunctionList dump.
    """
    if isinstance(payload, list):
        return [FunctionDescriptor.model_validate(item) for item in payload]
    if payload.get("functions"):
        return [FunctionDescriptor.model_validate(item) for item in payload["functions"]]
    return FunctionList.model_validate(payload).descriptors()


async def extract(
    doc_path: str,
    output: str | None = None,
    target: int = RoundConfig.DEFAULT_TARGET,
    mode: str = "quantity",
    guidelines: str | None = None,
    use_understanding: bool = True,
    provider: str | None = None,
    verbose: bool = False,
    log_dir: str | None = None,
) -> dict | None:
    """Run a full extraction and write the result.

    Returns:
        Result dict, or None on failure.
    """
    # Import here to keep --help fast
    from cosmic_extractor.orchestrator import extract_document

    text = _read_document(doc_path)
    if text is None:
        return None

    _print_header(
        f"Extracting: {Path(doc_path).name}",
        Provider=provider or COSMIC_PROVIDER,
        Target=target,
        Mode=mode,
        Understanding="ON" if use_understanding else "OFF",
    )

    cost_tracker = CostTracker()
    try:
        result = await extract_document(
            text,
            target=target,
            provider=provider,
            mode=mode,
            guidelines=guidelines,
            use_understanding=use_understanding,
            cost_tracker=cost_tracker,
            verbose=verbose,
            log_dir=log_dir,
            source=Path(doc_path).name,
        )
    except ConfigurationError as e:
        print(f"\n[ERROR] {e}")
        return None

    result_dict = result.model_dump(by_alias=True, mode="json")
    _write_json(result_dict, output)

    if cost_tracker.call_count > 0:
        print(f"\n{cost_tracker.summary()}")

    print(f"\n{result.unique_process_count}/{target} processes, {result.total_rows} rows, {result.state.value}")
    if result.failure:
        print(f"[ERROR] {result.failure.get('remediation') or result.failure.get('message')}")
        return None
    return result_dict


async def functions(
    doc_path: str,
    output: str | None = None,
    provider: str | None = None,
) -> dict | None:
    """Extract the function list of a document."""
    from cosmic_extractor.core.llm_client import ProviderClient
    from cosmic_extractor.core.provider_registry import ClientRegistry
    from cosmic_extractor.orchestrator import extract_functions

    text = _read_document(doc_path)
    if text is None:
        return None

    cost_tracker = CostTracker()
    try:
        client = ProviderClient(ClientRegistry.from_env().get(provider), cost_tracker=cost_tracker)
        function_list, issues = await extract_functions(text, client=client)
    except (ConfigurationError, ExhaustedAllModelsError) as e:
        print(f"\n[ERROR] {e}")
        return None

    for issue in issues:
        print(f"[WARN] {issue.message}")

    payload = function_list.model_dump(by_alias=True, mode="json")
    payload["functions"] = [d.model_dump(by_alias=True, mode="json") for d in function_list.descriptors()]
    _write_json(payload, output)
    if cost_tracker.call_count > 0:
        print(f"\n{cost_tracker.summary()}")
    return payload


async def split(
    functions_path: str,
    output: str | None = None,
    document_path: str | None = None,
    batch_size: int = BatchConfig.BATCH_SIZE,
    supplemental: bool = False,
    provider: str | None = None,
) -> dict | None:
    """Split a confirmed function list batch by batch."""
    from cosmic_extractor.core.llm_client import ProviderClient
    from cosmic_extractor.core.provider_registry import ClientRegistry
    from cosmic_extractor.phases import BatchSplitter

    functions_file = Path(functions_path)
    if not functions_file.exists():
        print(f"Error: File not found: {functions_file}")
        return None
    descriptors = load_descriptors(json.loads(functions_file.read_text(encoding="utf-8")))

    document = ""
    if document_path:
        document = _read_document(document_path)
        if document is None:
            return None

    _print_header(
        f"Splitting: {functions_file.name}",
        Functions=len(descriptors),
        BatchSize=batch_size,
        Supplemental="ON" if supplemental else "OFF",
    )

    cost_tracker = CostTracker()
    try:
        client = ProviderClient(ClientRegistry.from_env().get(provider), cost_tracker=cost_tracker)
        splitter = BatchSplitter(client, document=document, batch_size=batch_size)
        result = await splitter.split_all(descriptors, supplemental_pass=supplemental)
    except (ConfigurationError, ExhaustedAllModelsError) as e:
        print(f"\n[ERROR] {e}")
        return None

    result_dict = result.model_dump(by_alias=True, mode="json")
    _write_json(result_dict, output)
    for missed in result.missed_functions:
        print(f"[WARN] Missed: {missed.name}")
    if cost_tracker.call_count > 0:
        print(f"\n{cost_tracker.summary()}")
    return result_dict


def parse_table_file(table_path: str, output: str | None = None) -> list | None:
    """Parse a Markdown table file into records JSON."""
    path = Path(table_path)
    if not path.exists():
        print(f"Error: File not found: {path}")
        return None
    records = parse_table(path.read_text(encoding="utf-8"))
    payload = [r.model_dump(by_alias=True, mode="json") for r in records]
    _write_json(payload, output)
    return payload


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="COSMIC functional decomposition with LLMs",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  cosmic-extract extract requirements.md --target 40
  cosmic-extract extract requirements.md --mode quality -o out/result.json
  cosmic-extract functions requirements.md -o out/functions.json
  cosmic-extract split out/functions.json --document requirements.md --supplemental
  cosmic-extract parse-table table.md
        """,
    )
    parser.add_argument(
        "--provider",
        default=None,
        help="Provider (gemini, zhipu, openrouter, groq, openai). Default: COSMIC_PROVIDER or auto",
    )
    parser.add_argument(
        "-o", "--output",
        default=None,
        help="Write JSON here instead of stdout",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    extract_parser = subparsers.add_parser("extract", help="Multi-round extraction of a document")
    extract_parser.add_argument("document", help="Path to a .txt or .md document")
    extract_parser.add_argument(
        "-t", "--target",
        type=int,
        default=RoundConfig.DEFAULT_TARGET,
        help=f"Target number of functional processes (default: {RoundConfig.DEFAULT_TARGET})",
    )
    extract_parser.add_argument(
        "-m", "--mode",
        choices=["quantity", "quality"],
        default="quantity",
        help="quantity stops when the model says it is done; quality keeps going to the target",
    )
    extract_parser.add_argument("--guidelines", default=None, help="Free-text splitting rules")
    extract_parser.add_argument(
        "--no-understanding",
        action="store_true",
        help="Skip the document understanding call",
    )
    extract_parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Verbose output with DEBUG level logging",
    )
    extract_parser.add_argument("--log-dir", default=None, help="Directory for the run log file")

    functions_parser = subparsers.add_parser("functions", help="Extract the function list of a document")
    functions_parser.add_argument("document", help="Path to a .txt or .md document")

    split_parser = subparsers.add_parser("split", help="Split a confirmed function list")
    split_parser.add_argument("functions", help="Functions JSON (output of the functions command)")
    split_parser.add_argument("--document", default=None, help="Original document, used as reference")
    split_parser.add_argument(
        "-b", "--batch-size",
        type=int,
        default=BatchConfig.BATCH_SIZE,
        help=f"Functions per call (default: {BatchConfig.BATCH_SIZE})",
    )
    split_parser.add_argument(
        "--supplemental",
        action="store_true",
        help="Retry missed functions once after the last batch",
    )

    table_parser = subparsers.add_parser("parse-table", help="Parse a Markdown table into JSON")
    table_parser.add_argument("file", help="Markdown file containing the table")

    return parser


def main(argv: list[str] | None = None):
    load_dotenv()
    args = build_parser().parse_args(argv)

    if args.command == "extract":
        result = asyncio.run(extract(
            doc_path=args.document,
            output=args.output,
            target=args.target,
            mode=args.mode,
            guidelines=args.guidelines,
            use_understanding=not args.no_understanding,
            provider=args.provider,
            verbose=args.verbose,
            log_dir=args.log_dir,
        ))
    elif args.command == "functions":
        result = asyncio.run(functions(args.document, output=args.output, provider=args.provider))
    elif args.command == "split":
        result = asyncio.run(split(
            args.functions,
            output=args.output,
            document_path=args.document,
            batch_size=args.batch_size,
            supplemental=args.supplemental,
            provider=args.provider,
        ))
    else:
        result = parse_table_file(args.file, output=args.output)

    sys.exit(0 if result is not None else 1)


if __name__ == "__main__":
    main()
