"""Output reporting helpers."""
from __future__ import annotations

import csv
import json
import os
import tempfile
from contextlib import contextmanager
from typing import Any, Dict, Iterable, Iterator, List, Optional, TextIO

from . import config
from .adapter import main_category_for_slug
from .geo import format_distance
from .models import DisplayBusinessEntity

RESULT_FIELDS = [
    "id",
    "name",
    "category",
    "main_category",
    "rating",
    "review_count",
    "distance",
    "distance_label",
    "price_range",
    "is_open",
    "verified",
    "features",
    "address",
    "phone",
    "website",
    "lat",
    "lng",
]


def ensure_dir(path: str) -> None:
    os.makedirs(path, exist_ok=True)


def _fsync_dir(path: str) -> None:
    try:
        dir_fd = os.open(path, os.O_DIRECTORY)
    except OSError:
        return
    try:
        os.fsync(dir_fd)
    except OSError:
        pass
    finally:
        os.close(dir_fd)


@contextmanager
def atomic_writer(
    path: str,
    mode: str = "w",
    encoding: str = "utf-8",
    newline: Optional[str] = None,
) -> Iterator[TextIO]:
    dir_path = os.path.dirname(path) or "."
    base = os.path.basename(path)
    fd, tmp_path = tempfile.mkstemp(prefix=f".{base}.", suffix=".tmp", dir=dir_path)
    try:
        with os.fdopen(fd, mode, encoding=encoding, newline=newline) as f:
            yield f
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_path, path)
        _fsync_dir(dir_path)
    except BaseException:
        try:
            os.unlink(tmp_path)
        except OSError:
            pass
        raise


def build_result_row(entity: DisplayBusinessEntity) -> Dict[str, Any]:
    row = entity.to_row()
    row["main_category"] = main_category_for_slug(entity.category_slug)
    row["distance_label"] = format_distance(entity.distance)
    return row


def write_results_json(path: str, entities: Iterable[DisplayBusinessEntity]) -> None:
    rows = [build_result_row(e) for e in entities]
    with atomic_writer(path, mode="w", encoding="utf-8") as f:
        json.dump(rows, f, ensure_ascii=False, indent=2)


def write_results_csv(path: str, entities: Iterable[DisplayBusinessEntity]) -> None:
    with atomic_writer(path, mode="w", encoding="utf-8", newline="") as f:
        writer = csv.DictWriter(f, fieldnames=RESULT_FIELDS, extrasaction="ignore")
        writer.writeheader()
        for entity in entities:
            row = build_result_row(entity)
            row["features"] = json.dumps(row["features"], ensure_ascii=False)
            writer.writerow(row)


def render_results(entities: List[DisplayBusinessEntity]) -> List[str]:
    lines: List[str] = []
    for idx, entity in enumerate(entities, start=1):
        badge = " [verified]" if entity.verified else ""
        status = "open" if entity.is_open else "closed"
        lines.append(
            f"{idx:>3}. {entity.name}{badge} | {entity.category} | "
            f"{entity.rating:.1f} ({entity.review_count}) | "
            f"{format_distance(entity.distance)} | {config.PRICE_SYMBOL * entity.price_range} | {status}"
        )
    return lines


def render_summary(total: int, visible: int, rejections: Dict[str, int]) -> List[str]:
    lines = [f"Fetched: {total}", f"Visible after filters: {visible}"]
    if rejections:
        lines.append("Filtered out:")
        for reason, count in sorted(rejections.items(), key=lambda kv: (-kv[1], kv[0])):
            lines.append(f"- {reason}: {count}")
    return lines
