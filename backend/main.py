import argparse
import json
import os
import logging
import sys
from dataclasses import asdict

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger(__name__)

if os.environ.get("DEBUG", "0") == "1":
    logging.getLogger().setLevel(logging.DEBUG)

from adapters.local.log_progress import LogProgressAdapter
from config import (
    get_config, create_analysis_options, create_classification_adapter, create_store_adapter,
)
from errors import AnalysisError
from mappers import records_to_utterances
from segmentation import format_utterances_as_text
from speaker_stats import compute_speaker_statistics, extract_silent_slots
from token_reader import PROVIDERS
from use_cases.analyze import STAGES, AnalyzeSessionUseCase
from use_cases.ingest import IngestTranscriptUseCase


def _print_json(data) -> None:
    print(json.dumps(data, ensure_ascii=False, indent=2))


def cmd_add_session(args, store) -> None:
    store.add_session(args.session_id, mode=args.mode)
    logger.info(f"Session {args.session_id} created (mode={args.mode})")


def cmd_ingest(args, store) -> None:
    with open(args.transcript, encoding="utf-8") as f:
        payload = json.load(f)

    use_case = IngestTranscriptUseCase(
        store, LogProgressAdapter(), strip_annotations=get_config().strip_annotations,
    )
    result = use_case.execute(args.session_id, payload, provider=args.provider)
    _print_json({
        "session_id": result.session_id,
        "language_code": result.language_code,
        "utterances": len(result.utterances),
        "speakers": {k: asdict(v) for k, v in result.statistics.items()},
    })


def _analyze_use_case(store) -> AnalyzeSessionUseCase:
    cfg = get_config()
    return AnalyzeSessionUseCase(
        store, create_classification_adapter(cfg), LogProgressAdapter(), create_analysis_options(cfg),
    )


def cmd_analyze(args, store) -> None:
    result = _analyze_use_case(store).run(args.session_id, start_stage=args.from_stage)
    _print_json({"session_id": result.session_id, "stages": [asdict(s) for s in result.stages]})


def cmd_run_stage(args, store) -> None:
    outcome = _analyze_use_case(store).run_stage(args.session_id, args.stage)
    _print_json(asdict(outcome))


def cmd_stats(args, store) -> None:
    utterances = records_to_utterances(store.get_utterances(args.session_id))
    if args.transcript:
        print(format_utterances_as_text(utterances))
        return
    slots = extract_silent_slots(utterances, threshold=args.silence_threshold)
    _print_json({
        "session_id": args.session_id,
        "speakers": {k: asdict(v) for k, v in compute_speaker_statistics(utterances).items()},
        "silent_slots": [asdict(s) for s in slots],
    })


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Parent-child interaction transcript analysis")
    parser.add_argument("--store", help="Path to the JSON store (default: STORE_PATH)")
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("add-session", help="Create an empty session record")
    p.add_argument("session_id")
    p.add_argument("--mode", choices=["CDI", "PDI"], default="CDI")
    p.set_defaults(func=cmd_add_session)

    p = sub.add_parser("ingest", help="Segment a recognition transcript into utterances")
    p.add_argument("session_id")
    p.add_argument("transcript", help="Path to the recognition JSON output")
    p.add_argument("--provider", choices=PROVIDERS, default="elevenlabs")
    p.set_defaults(func=cmd_ingest)

    p = sub.add_parser("analyze", help="Run the analysis pipeline")
    p.add_argument("session_id")
    p.add_argument("--from-stage", choices=STAGES, default=STAGES[0])
    p.set_defaults(func=cmd_analyze)

    p = sub.add_parser("run-stage", help="Re-run a single pipeline stage")
    p.add_argument("session_id")
    p.add_argument("stage", choices=STAGES)
    p.set_defaults(func=cmd_run_stage)

    p = sub.add_parser("stats", help="Speaker statistics and silent slots for a session")
    p.add_argument("session_id")
    p.add_argument("--silence-threshold", type=float, default=3.0)
    p.add_argument("--transcript", action="store_true", help="Print the utterances instead")
    p.set_defaults(func=cmd_stats)

    return parser


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    cfg = get_config()
    if args.store:
        cfg.store_path = args.store
    store = create_store_adapter(cfg)

    try:
        args.func(args, store)
    except AnalysisError as e:
        logger.error(f"{type(e).__name__}: {e.message} (session={e.session_id}, stage={e.stage})")
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
