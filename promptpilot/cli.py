# Copyright 2024 Flyto
# Licensed under the Apache License, Version 2.0
"""promptpilot CLI — run, compare and optimize prompts from the terminal."""
import argparse
import asyncio
import json
import logging
import sys

_RESET = "\033[0m"
_DIM = "\033[90m"
_BOLD = "\033[1m"
_GREEN = "\033[32m"
_YELLOW = "\033[33m"
_RED = "\033[31m"
_CYAN = "\033[36m"


def _add_provider_args(p):
    p.add_argument("--provider", "-p", help="LLM provider (openai, anthropic, gemini, ollama)")
    p.add_argument("--model", "-m", help="Generation model id")
    p.add_argument("--api-key", "-k", help="API key (or use env vars)")
    p.add_argument("--eval-model", help="Model used for quality evaluation")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="promptpilot",
        description="Compose, run and compare prompt variations against hosted LLMs.",
    )
    parser.add_argument("--config", "-c", help="YAML config file (default: environment variables)")
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")
    sub = parser.add_subparsers(dest="command")

    # promptpilot run "Say hi" --criteria "friendly"
    run_p = sub.add_parser("run", help="Run one prompt")
    run_p.add_argument("prompt", nargs="+", help="Prompt text")
    run_p.add_argument("--criteria", "-e", default="", help="Evaluation criteria (enables quality scoring)")
    run_p.add_argument("--json", action="store_true", help="Output raw JSON")
    _add_provider_args(run_p)

    # promptpilot compare -P "a" -P "b" --csv out.csv
    cmp_p = sub.add_parser("compare", help="Run several prompt variations side by side")
    cmp_p.add_argument("--prompt", "-P", action="append", default=[], help="Prompt variation (repeatable)")
    cmp_p.add_argument("--file", "-f", help="YAML prompt set (list under 'prompts:')")
    cmp_p.add_argument("--criteria", "-e", default="", help="Evaluation criteria for prompts without their own")
    cmp_p.add_argument("--csv", nargs="?", const="", default=None, help="Export results as CSV")
    cmp_p.add_argument("--json", action="store_true", help="Output raw JSON")
    cmp_p.add_argument("--quiet", "-q", action="store_true", help="Only print the summary table")
    _add_provider_args(cmp_p)

    # promptpilot optimize "Write a slogan"
    opt_p = sub.add_parser("optimize", help="Suggest an improved version of a prompt")
    opt_p.add_argument("prompt", nargs="+", help="Prompt text")
    opt_p.add_argument("--json", action="store_true", help="Output raw JSON")
    _add_provider_args(opt_p)

    # promptpilot models
    models_p = sub.add_parser("models", help="List selectable models for the provider")
    models_p.add_argument("--provider", "-p", help="LLM provider")

    # promptpilot library list|save|delete
    lib_p = sub.add_parser("library", help="Manage saved prompts")
    lib_sub = lib_p.add_subparsers(dest="library_command")
    lib_sub.add_parser("list", help="List saved prompts")
    save_p = lib_sub.add_parser("save", help="Save a prompt")
    save_p.add_argument("prompt", nargs="+", help="Prompt text")
    save_p.add_argument("--criteria", "-e", default="", help="Evaluation criteria")
    save_p.add_argument("--model", "-m", default="", help="Model id")
    del_p = lib_sub.add_parser("delete", help="Delete a saved prompt")
    del_p.add_argument("id", type=int, help="Library entry id")

    # promptpilot serve
    serve_p = sub.add_parser("serve", help="Start the JSON API server for the browser client")
    serve_p.add_argument("--host", default="127.0.0.1", help="Bind host (default: 127.0.0.1)")
    serve_p.add_argument("--port", type=int, default=7420, help="Bind port (default: 7420)")
    _add_provider_args(serve_p)

    # promptpilot version
    sub.add_parser("version", help="Show version and dependency status")

    return parser


def main(argv=None):
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        stream=sys.stderr,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if args.command == "version":
        _cmd_version()
    elif args.command == "run":
        _cmd_run(args)
    elif args.command == "compare":
        _cmd_compare(args)
    elif args.command == "optimize":
        _cmd_optimize(args)
    elif args.command == "models":
        _cmd_models(args)
    elif args.command == "library":
        _cmd_library(args, parser)
    elif args.command == "serve":
        _cmd_serve(args)
    else:
        parser.print_help()


def _load_config(args):
    from promptpilot.config import PilotConfig

    config = PilotConfig.from_file(args.config) if getattr(args, "config", None) else PilotConfig.from_env()
    if getattr(args, "provider", None):
        config.provider = args.provider
    if getattr(args, "model", None):
        config.model = args.model
    if getattr(args, "api_key", None):
        config.api_key = args.api_key
    if getattr(args, "eval_model", None):
        config.eval_model = args.eval_model
    return config


def _require_key(config):
    if not config.api_key and config.provider != "ollama":
        print("Error: No API key configured. Set PROMPTPILOT_API_KEY or a provider key "
              "(OPENAI_API_KEY, ANTHROPIC_API_KEY, GEMINI_API_KEY).", file=sys.stderr)
        sys.exit(1)


def _make_collection(config):
    from promptpilot.collection import PromptCollection

    config.seed_example = False
    return PromptCollection.from_config(config)


def _cmd_version():
    from promptpilot import __version__

    print()
    print("  {}{}PromptPilot{} {}v{}{}".format(_BOLD, _CYAN, _RESET, _DIM, __version__, _RESET))
    print()
    deps = [
        ("openai", "openai"),
        ("anthropic", "anthropic"),
        ("aiohttp", "aiohttp"),
        ("aiosqlite", "aiosqlite"),
    ]
    for label, pkg_name in deps:
        ver = _get_pkg_version(pkg_name)
        if ver:
            print("  {}✔{} {} {}{}{}".format(_GREEN, _RESET, label, _DIM, ver, _RESET))
        else:
            print("  {}✘ {}{}".format(_DIM, label, _RESET))
    print()


def _get_pkg_version(pkg_name):
    """Get package version from importlib.metadata."""
    from importlib.metadata import PackageNotFoundError, version

    try:
        return version(pkg_name)
    except PackageNotFoundError:
        return None


def _print_metrics(variation):
    result = variation.result
    if result is None:
        return
    parts = [
        "{} chars".format(result.length_chars),
        "{} ms".format(result.latency_ms),
        "{} tokens".format(result.token_count),
    ]
    if result.quality_score is not None:
        parts.append("quality {}/5".format(result.quality_score.score))
    print("{}{}{}".format(_DIM, "  ·  ".join(parts), _RESET), file=sys.stderr)
    if result.quality_score is not None and result.quality_score.explanation:
        print("{}{}{}".format(_DIM, result.quality_score.explanation, _RESET), file=sys.stderr)


def _cmd_run(args):
    config = _load_config(args)
    _require_key(config)
    collection = _make_collection(config)

    variation = collection.add(prompt_text=" ".join(args.prompt), evaluation_criteria=args.criteria)
    response = asyncio.run(collection.run(variation.id))

    if args.json:
        print(response.model_dump_json(indent=2, exclude_none=True))
        if not response.ok:
            sys.exit(1)
    elif response.ok:
        print(response.variation.result.text)
        _print_metrics(response.variation)
    else:
        print("Error: {}".format(response.message), file=sys.stderr)
        sys.exit(1)


def _cmd_compare(args):
    from promptpilot.export import write_csv
    from promptpilot.library import load_prompt_set

    entries = [{"prompt_text": p} for p in args.prompt]
    if args.file:
        try:
            entries.extend(load_prompt_set(args.file))
        except (FileNotFoundError, ValueError) as e:
            print("Error: {}".format(e), file=sys.stderr)
            sys.exit(1)
    if not entries:
        print("Error: give at least one --prompt or a --file prompt set.", file=sys.stderr)
        sys.exit(1)

    config = _load_config(args)
    _require_key(config)
    collection = _make_collection(config)
    for entry in entries:
        if not entry.get("evaluation_criteria"):
            entry["evaluation_criteria"] = args.criteria
        collection.add(**entry)

    responses = asyncio.run(collection.run_many())

    if args.json:
        print(json.dumps([r.to_dict() for r in responses], indent=2, ensure_ascii=False))
    else:
        if not args.quiet:
            _print_results(collection, responses)
        _print_table(collection, responses)

    if args.csv is not None:
        path = write_csv(collection.variations, args.csv or None)
        print("{}Exported: {}{}".format(_DIM, path, _RESET), file=sys.stderr)

    if not any(r.ok for r in responses):
        sys.exit(1)


def _print_results(collection, responses):
    for index, response in enumerate(responses):
        variation = collection.get(response.variation_id)
        print("{}Variation {}{} {}({}){}".format(
            _BOLD, index + 1, _RESET, _DIM, variation.model_id, _RESET,
        ))
        if response.ok:
            print(variation.result.text)
        else:
            print("{}{}{}".format(_RED, response.message, _RESET))
        print()


def _print_table(collection, responses):
    print("  {}{:<4} {:<24} {:>7} {:>9} {:>7} {:>5}  {}{}".format(
        _DIM, "#", "MODEL", "LENGTH", "LATENCY", "TOKENS", "SCORE", "PROMPT", _RESET,
    ))
    print("  {}{}{}".format(_DIM, "-" * 78, _RESET))
    for index, response in enumerate(responses):
        variation = collection.get(response.variation_id)
        prompt = variation.prompt_text.replace("\n", " ")
        if len(prompt) > 24:
            prompt = prompt[:21] + "..."
        result = variation.result
        if response.ok and result is not None:
            score = "{}/5".format(result.quality_score.score) if result.quality_score else "-"
            print("  {:<4} {:<24} {:>7} {:>7}ms {:>7} {:>5}  {}".format(
                index + 1, variation.model_id[:24], result.length_chars,
                result.latency_ms, result.token_count, score, prompt,
            ))
        else:
            print("  {:<4} {:<24} {}{:>38}{}  {}".format(
                index + 1, variation.model_id[:24], _RED, response.error, _RESET, prompt,
            ))


def _cmd_optimize(args):
    config = _load_config(args)
    _require_key(config)
    collection = _make_collection(config)

    variation = collection.add(prompt_text=" ".join(args.prompt))
    response = asyncio.run(collection.optimize(variation.id))

    if args.json:
        print(response.model_dump_json(indent=2, exclude_none=True))
        if not response.ok:
            sys.exit(1)
    elif response.ok:
        print(response.suggestion.optimized_prompt_text)
        if response.suggestion.explanation:
            print()
            print("{}{}{}".format(_DIM, response.suggestion.explanation, _RESET), file=sys.stderr)
    else:
        print("Error: {}".format(response.message), file=sys.stderr)
        sys.exit(1)


def _cmd_models(args):
    config = _load_config(args)
    print("  {}Provider:{} {}".format(_BOLD, _RESET, config.resolved_provider))
    for entry in config.available_models():
        marker = "*" if entry["value"] == config.resolved_model else " "
        print("  {} {:<28} {}{}{}".format(marker, entry["value"], _DIM, entry["label"], _RESET))
    print("  {}evaluation model: {}{}".format(_DIM, config.resolved_eval_model, _RESET))


def _cmd_library(args, parser):
    from promptpilot.library import PromptLibrary

    if args.library_command is None:
        parser.parse_args(["library", "--help"])
        return

    config = _load_config(args)
    library = PromptLibrary(config.library_db_path)

    async def _go():
        try:
            if args.library_command == "list":
                return await library.list()
            if args.library_command == "save":
                return await library.save(
                    " ".join(args.prompt), args.criteria, args.model or config.resolved_model,
                )
            return await library.delete(args.id)
        finally:
            await library.close()

    result = asyncio.run(_go())

    if args.library_command == "list":
        if not result:
            print("  {}Your library is empty.{}".format(_DIM, _RESET))
            return
        for entry in result:
            print("  {}{:>4}{}  {:<24} {}".format(
                _CYAN, entry.id, _RESET, entry.model_id[:24],
                (entry.prompt_text or "Untitled Prompt").replace("\n", " ")[:60],
            ))
            if entry.evaluation_criteria:
                print("        {}criteria: {}{}".format(_DIM, entry.evaluation_criteria[:60], _RESET))
    elif args.library_command == "save":
        print("  {}✔{} Saved as #{}".format(_GREEN, _RESET, result.id))
    elif result:
        print("  {}✔{} Deleted #{}".format(_GREEN, _RESET, args.id))
    else:
        print("{}No library entry #{}{}".format(_YELLOW, args.id, _RESET), file=sys.stderr)
        sys.exit(1)


def _cmd_serve(args):
    """Start the aiohttp JSON API used by the browser client."""
    from aiohttp import web

    from promptpilot.collection import PromptCollection
    from promptpilot.server import create_app

    config = _load_config(args)
    _require_key(config)
    collection = PromptCollection.from_config(config)
    app = create_app(collection, config=config)

    print()
    print("  {}{}PromptPilot Server{}".format(_BOLD, _CYAN, _RESET))
    print("  Listening on {}http://{}:{}{}".format(_GREEN, args.host, args.port, _RESET))
    print("  {}provider={} model={} eval={}{}".format(
        _DIM, config.resolved_provider, config.resolved_model, config.resolved_eval_model, _RESET,
    ))
    print()
    print("  {}GET  /api/prompts{}        {}list cards{}".format(_BOLD, _RESET, _DIM, _RESET))
    print("  {}POST /api/prompts/{{id}}/run{}  {}run one card{}".format(_BOLD, _RESET, _DIM, _RESET))
    print("  {}GET  /api/export.csv{}     {}download results{}".format(_BOLD, _RESET, _DIM, _RESET))
    print()
    web.run_app(app, host=args.host, port=args.port, print=None)


if __name__ == "__main__":
    main()
