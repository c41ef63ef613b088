"""localctx command line: index, search, watch and inspect a workspace index.

Examples:
  localctx index /path/to/project
  localctx index /path/to/project --full
  localctx search /path/to/project "where are retries configured" --top-k 5
  localctx watch /path/to/project
"""

import argparse
import asyncio
import json
import logging
import signal
import sys
from pathlib import Path

from .config import AppConfig, load_config
from .embedder import OllamaEmbedder
from .errors import LocalCtxError
from .service import LocalContextService

log = logging.getLogger("localctx.cli")


def format_result(hit: dict, index: int) -> str:
    """Format a single search result for terminal display."""
    symbol = f"  symbol: {hit['symbol']}" if hit.get("symbol") else ""
    lines = [
        f"\n{'─' * 70}",
        f"  #{index+1}  {hit['path']}  (L{hit['lines']})",
        f"  score: {hit['score']:.4f}  |  level: {hit['level']}{symbol}",
        f"{'─' * 70}",
    ]
    content = hit["content"]
    if len(content) > 2000:
        content = content[:2000] + "\n... [truncated]"
    lines.append(content)
    return "\n".join(lines)


def _build_config(args) -> AppConfig:
    cfg = load_config()
    if args.ollama_url:
        cfg.ollama.base_url = args.ollama_url
    if args.embedding_model:
        cfg.ollama.embed_model = args.embedding_model
    if args.skip_dirs:
        cfg.index.extra_skip_dirs = [d for d in args.skip_dirs.split(",") if d]
    return cfg


async def _cmd_index(service: LocalContextService, args) -> int:
    stats = await (service.reindex_all() if args.full else service.refresh())
    print(
        f"Indexed {stats.files_indexed} files ({stats.chunks_created} chunks), "
        f"{stats.files_skipped} unchanged, {stats.files_removed} removed, "
        f"{stats.files_failed} failed in {stats.elapsed_seconds:.1f}s"
    )
    for path, err in stats.errors.items():
        print(f"  ! {path}: {err}", file=sys.stderr)
    return 1 if stats.files_failed else 0


async def _cmd_search(service: LocalContextService, args) -> int:
    hits = await service.search(args.query, args.top_k)
    if not hits:
        print("No results found.")
        return 1
    if args.json:
        print(json.dumps(hits, indent=2))
    else:
        for i, hit in enumerate(hits):
            print(format_result(hit, i))
        print()
    return 0


async def _cmd_status(service: LocalContextService, args) -> int:
    print(json.dumps(service.status(), indent=2))
    return 0


async def _cmd_watch(service: LocalContextService, args) -> int:
    await service.refresh()
    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop.set)
        except NotImplementedError:
            # Windows event loops: fall back to KeyboardInterrupt
            pass

    service.start_watching()
    print(f"Watching {service.workspace} (Ctrl+C to stop)")
    try:
        await stop.wait()
    finally:
        await service.shutdown()
    return 0


_COMMANDS = {
    "index": _cmd_index,
    "search": _cmd_search,
    "status": _cmd_status,
    "watch": _cmd_watch,
}


async def run(args) -> int:
    cfg = _build_config(args)
    embedder = OllamaEmbedder(cfg.ollama.base_url, cfg.ollama.embed_model, cfg.ollama.timeout_s)
    try:
        if args.command != "status":
            # Fail fast when Ollama is down or the model is missing
            await embedder.get_dimension()
        service = LocalContextService.create(args.workspace.resolve(), embedder, cfg)
        return await _COMMANDS[args.command](service, args)
    finally:
        await embedder.aclose()


def main(argv=None):
    parser = argparse.ArgumentParser(
        prog="localctx",
        description="Local incremental code index with Ollama embeddings",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__.split("\n\n", 1)[1],
    )
    parser.add_argument("--ollama-url", default=None,
                        help="Ollama base URL (default: $OLLAMA_URL or http://localhost:11434)")
    parser.add_argument("--embedding-model", "-e", default=None,
                        help="Ollama embedding model (default: $OLLAMA_EMBED_MODEL or nomic-embed-text)")
    parser.add_argument("--skip-dirs", type=str, default="",
                        help="Additional directories to skip (comma-separated)")
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")

    sub = parser.add_subparsers(dest="command", required=True)

    p_index = sub.add_parser("index", help="Index new and changed files")
    p_index.add_argument("workspace", type=Path)
    p_index.add_argument("--full", action="store_true", help="Clear the index and rebuild everything")

    p_search = sub.add_parser("search", help="Semantic search over the index")
    p_search.add_argument("workspace", type=Path)
    p_search.add_argument("query")
    p_search.add_argument("--top-k", "-k", type=int, default=10)
    p_search.add_argument("--json", "-j", action="store_true", help="Output as JSON")

    p_watch = sub.add_parser("watch", help="Keep the index up to date as files change")
    p_watch.add_argument("workspace", type=Path)

    p_status = sub.add_parser("status", help="Show index statistics")
    p_status.add_argument("workspace", type=Path)

    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )

    if not args.workspace.is_dir():
        log.error("Not a directory: %s", args.workspace)
        sys.exit(1)

    try:
        code = asyncio.run(run(args))
    except KeyboardInterrupt:
        code = 130
    except LocalCtxError as e:
        log.error("%s", e)
        code = 1
    sys.exit(code)


if __name__ == "__main__":
    main()
