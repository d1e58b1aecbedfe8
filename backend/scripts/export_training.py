import argparse
import json
from pathlib import Path
from typing import Any, Iterator, Optional

from backend.app.summaries import query_training_data


def to_jsonl(path: Path, records: list[dict[str, Any]]) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("w", encoding="utf-8") as f:
        for rec in records:
            f.write(json.dumps(rec, ensure_ascii=False) + "\n")


def iter_summaries(
    db_path: Path,
    label_level: Optional[str] = None,
    participant_id: Optional[str] = None,
    page_size: int = 1000,
) -> Iterator[dict[str, Any]]:
    offset = 0
    while True:
        rows, total = query_training_data(
            db_path,
            label_level=label_level,
            participant_id=participant_id,
            limit=page_size,
            offset=offset,
        )
        yield from rows
        offset += len(rows)
        if not rows or offset >= total:
            break


def to_training_record(summary: dict[str, Any]) -> dict[str, Any]:
    label = summary.get("label") or {}
    return {
        "sessionId": summary.get("sessionId"),
        "participantId": summary.get("participantId"),
        "userId": summary.get("userId"),
        "featureVersion": summary.get("featureVersion"),
        "label": {
            "level": label.get("level", "unknown"),
            "score": label.get("score"),
            "source": label.get("source", "none"),
            "version": label.get("version"),
        },
        "features": summary.get("features") or {},
    }


def export_training(
    db_path: Path,
    out_path: Path,
    label_level: Optional[str] = None,
    participant_id: Optional[str] = None,
    page_size: int = 1000,
) -> int:
    if not db_path.exists():
        raise FileNotFoundError(f"SQLite db not found: {db_path}")
    records = [
        to_training_record(s)
        for s in iter_summaries(db_path, label_level, participant_id, page_size)
    ]
    to_jsonl(out_path, records)
    return len(records)


def main(argv: Optional[list[str]] = None) -> None:
    project_root = Path(__file__).resolve().parents[2]
    default_db = project_root / "backend" / "data" / "motor.db"
    default_out = project_root / "data" / "motor_sessions.jsonl"

    parser = argparse.ArgumentParser(
        description="Export labelled session summaries from the motor SQLite db into JSONL"
    )
    parser.add_argument("--db", default=str(default_db), help="Path to backend SQLite db")
    parser.add_argument("--out", default=str(default_out), help="Output JSONL path")
    parser.add_argument("--label-level", default=None, help="Only export sessions with this label level")
    parser.add_argument("--participant-id", default=None, help="Only export one participant")
    parser.add_argument("--page-size", type=int, default=1000, help="Rows per query page (1..5000)")
    args = parser.parse_args(argv)

    n = export_training(
        db_path=Path(args.db),
        out_path=Path(args.out),
        label_level=args.label_level,
        participant_id=args.participant_id,
        page_size=max(1, min(5000, args.page_size)),
    )
    print(f"Export complete: sessions={n}")


if __name__ == "__main__":
    main()
