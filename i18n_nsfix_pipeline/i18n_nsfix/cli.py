from __future__ import annotations
import argparse, json
from typing import List, Optional

from .logger import setup_logger
from .config import NsFixConfig, load_config
from .errors import NsFixError
from .locale_store import LocaleStore
from .optimizer import AnalysisResult, NamespaceOptimizer
from .missing_keys import HeuristicSuggester, build_missing_report, build_suggestions, import_suggestions
from .suggester_base import Suggester
from .suggester_gemini import GeminiSuggester
from .cache import SuggestionCache
from .utils import load_text, save_text

# --------- small helpers ---------

def load_json(path: str) -> dict:
    try:
        return json.loads(load_text(path))
    except (OSError, ValueError) as e:
        raise NsFixError(f"Cannot load {path}: {e}") from e

def save_json(path: str, data) -> None:
    save_text(path, json.dumps(data, ensure_ascii=False, indent=2) + "\n")

def configure_suggester(cfg: NsFixConfig, provider: str, logger) -> Suggester:
    if provider.lower() == "gemini":
        try:
            return GeminiSuggester(
                cfg.llm_model,
                qps=cfg.qps,
                max_retries=cfg.max_retries,
                backoff_base=cfg.backoff_base,
                cache=SuggestionCache(cfg.cache_path),
                logger=logger,
            )
        except RuntimeError as e:
            raise NsFixError(str(e)) from e
    if provider.lower() == "heuristic":
        return HeuristicSuggester()
    raise NsFixError(f"Unknown suggestion provider: {provider}")

def _print_stats(stats: dict, logger) -> None:
    logger.info(
        f"Namespaces: {stats.get('namespace_count', 0)}, keys: {stats.get('total_keys', 0)}, "
        f"files scanned: {stats.get('files_scanned', 0)}"
    )
    for issue_type, n in sorted(stats.get("issues_by_type", {}).items()):
        logger.info(f"  {issue_type}: {n}")

# --------- commands ---------

def cmd_analyze(cfg: NsFixConfig, args, logger) -> int:
    analysis = NamespaceOptimizer(cfg).analyze()
    save_json(args.output, analysis.to_dict())
    _print_stats(analysis.stats, logger)
    for err in analysis.errors:
        logger.warning(f"{err['file']}: {err['error']}")
    logger.info(f"Wrote {args.output}")
    return 0

def cmd_apply(cfg: NsFixConfig, args, logger) -> int:
    analysis = AnalysisResult.from_dict(load_json(args.analysis))
    ids: List[str] = list(args.ids or [])
    if args.all_duplicates:
        ids += [g.id for g in analysis.duplicate_groups]
    if args.all_issues:
        ids += analysis.fixable_issue_ids()

    result = NamespaceOptimizer(cfg).apply_fixes(ids, analysis)
    for line in result.changes:
        logger.info(line)
    for s in result.skipped:
        logger.warning(f"Skipped {s['file']}:{s['line']}: {s['reason']}")
    for err in result.errors:
        logger.warning(f"{err['file']}: {err['error']}")
    if args.report:
        save_json(args.report, result.to_dict())
        logger.info(f"Wrote {args.report}")
    return 1 if result.errors else 0

def cmd_missing(cfg: NsFixConfig, args, logger) -> int:
    analysis = AnalysisResult.from_dict(load_json(args.analysis))
    report = build_missing_report(analysis.issues, cfg.source_root)
    save_json(args.output, report)
    s = report["summary"]
    logger.info(
        f"{s['unique_keys']} unique missing key(s) in {s['namespaces_affected']} namespace(s), "
        f"{s['files_with_issues']} file(s); wrote {args.output}"
    )
    return 0

def cmd_suggest(cfg: NsFixConfig, args, logger) -> int:
    report = load_json(args.input)
    suggester = configure_suggester(cfg, args.provider, logger)
    suggestions = build_suggestions(report, suggester, batch_size=cfg.batch_size)
    save_json(args.output, suggestions)
    chars = getattr(suggester, "prompt_chars", 0) + getattr(suggester, "completion_chars", 0)
    if chars:
        logger.info(f"LLM traffic: {chars} chars")
    logger.info(f"Wrote {args.output}; review it and set \"approved\": true before importing")
    return 0

def cmd_import(cfg: NsFixConfig, args, logger) -> int:
    suggestions = load_json(args.input)
    store = LocaleStore(cfg.messages_dir, cfg.primary_locale)
    store.load()
    result = import_suggestions(store, suggestions, approve_all=args.all)
    logger.info(f"Added: {len(result.added)} key(s), skipped: {result.skipped}")
    if not result.added:
        logger.info("Nothing approved. Set \"approved\": true in the suggestions file or pass --all.")
        return 0
    if cfg.dry_run:
        for k in result.added[:20]:
            logger.info(f"  would add {k}")
        return 0
    failures = store.save()
    save_json(args.input, suggestions)
    return 1 if failures else 0

def cmd_sync(cfg: NsFixConfig, args, logger) -> int:
    store = LocaleStore(cfg.messages_dir, cfg.primary_locale)
    store.load()
    for locale in store.locales[1:]:
        orphans = store.orphans_in(locale)
        if orphans:
            logger.warning(f"{locale}: {len(orphans)} key(s) not in {cfg.primary_locale}, e.g. {orphans[0][0]}.{orphans[0][1]}")
    counts = store.sync_from_primary()
    for locale, n in counts.items():
        logger.info(f"{locale}: {n} key(s) copied from {cfg.primary_locale}")
    if cfg.dry_run or not any(counts.values()):
        return 0
    return 1 if store.save() else 0

COMMANDS = {
    "analyze": cmd_analyze,
    "apply": cmd_apply,
    "missing": cmd_missing,
    "suggest": cmd_suggest,
    "import": cmd_import,
    "sync": cmd_sync,
}

def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(prog="i18n-nsfix", description="Find and fix translation namespace mismatches")
    ap.add_argument("--config", default=None, help="YAML config file")
    ap.add_argument("--messages-dir", default=None)
    ap.add_argument("--source-root", default=None)
    ap.add_argument("--primary-locale", default=None)
    ap.add_argument("--log-level", default=None)
    ap.add_argument("--workers", type=int, default=None)
    ap.add_argument("--dry-run", action="store_true", default=None)
    sub = ap.add_subparsers(dest="cmd", required=True)

    a = sub.add_parser("analyze", help="Report broken calls and duplicate values")
    a.add_argument("--output", default="analysis.json")

    p = sub.add_parser("apply", help="Apply selected fixes from an analysis file")
    p.add_argument("--analysis", default="analysis.json")
    p.add_argument("--ids", nargs="+", default=None, help="Duplicate group / issue ids")
    p.add_argument("--all-duplicates", action="store_true")
    p.add_argument("--all-issues", action="store_true")
    p.add_argument("--report", default=None, help="Write the apply result as JSON")

    m = sub.add_parser("missing", help="List keys that exist nowhere, with usage context")
    m.add_argument("--analysis", default="analysis.json")
    m.add_argument("--output", default="missing-keys.json")

    s = sub.add_parser("suggest", help="Suggest values for missing keys")
    s.add_argument("--input", default="missing-keys.json")
    s.add_argument("--output", default="suggested-translations.json")
    s.add_argument("--provider", default="heuristic", help="heuristic|gemini")

    i = sub.add_parser("import", help="Add approved suggestions to every locale")
    i.add_argument("--input", default="suggested-translations.json")
    i.add_argument("--all", action="store_true", help="Import every suggestion, approved or not")

    sub.add_parser("sync", help="Copy keys missing from other locales from the primary locale")
    return ap

def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    logger = setup_logger()
    try:
        cfg = load_config(
            args.config,
            messages_dir=args.messages_dir,
            source_root=args.source_root,
            primary_locale=args.primary_locale,
            log_level=args.log_level,
            workers=args.workers,
            dry_run=args.dry_run,
        )
        logger = setup_logger(cfg.log_level)
        if cfg.dry_run:
            logger.info("Dry run: no file will be written")
        return COMMANDS[args.cmd](cfg, args, logger)
    except NsFixError as e:
        logger.error(str(e))
        return 2

if __name__ == "__main__":
    raise SystemExit(main())
