import csv
import json

import pytest

from discovery.models import DisplayBusinessEntity
from discovery.reporting import (
    RESULT_FIELDS,
    atomic_writer,
    render_results,
    render_summary,
    write_results_csv,
    write_results_json,
)


def _entity(entity_id, **extra):
    values = dict(
        id=entity_id,
        name=f"Café {entity_id}",
        category="Café",
        category_slug="cafe",
        rating=4.5,
        distance=0.35,
        lat=-33.44,
        lng=-70.65,
        features=("WiFi", "Terraza"),
    )
    values.update(extra)
    return DisplayBusinessEntity(**values)


def _leftovers(directory, keep):
    return [p for p in directory.iterdir() if p.name != keep]


def test_atomic_writer_replaces_file(tmp_path):
    path = tmp_path / "atomic.txt"

    with atomic_writer(str(path)) as f:
        f.write("first")
    with atomic_writer(str(path)) as f:
        f.write("second")

    assert path.read_text(encoding="utf-8") == "second"
    assert not _leftovers(tmp_path, "atomic.txt")


def test_atomic_writer_keeps_old_content_on_error(tmp_path):
    path = tmp_path / "atomic.txt"
    path.write_text("original", encoding="utf-8")

    with pytest.raises(RuntimeError):
        with atomic_writer(str(path)) as f:
            f.write("partial")
            raise RuntimeError("boom")

    assert path.read_text(encoding="utf-8") == "original"
    assert not _leftovers(tmp_path, "atomic.txt")


def test_write_results_json(tmp_path):
    path = tmp_path / "results.json"
    write_results_json(str(path), [_entity("1"), _entity("2", distance=2.4)])

    text = path.read_text(encoding="utf-8")
    rows = json.loads(text)
    assert [r["id"] for r in rows] == ["1", "2"]
    assert rows[0]["main_category"] == "gastronomia"
    assert rows[0]["distance_label"] == "350 m"
    assert rows[1]["distance_label"] == "2.4 km"
    assert rows[0]["features"] == ["WiFi", "Terraza"]
    assert "Café" in text
    assert not _leftovers(tmp_path, "results.json")


def test_write_results_csv(tmp_path):
    path = tmp_path / "results.csv"
    write_results_csv(str(path), [_entity("1", verified=True)])

    with open(path, newline="", encoding="utf-8") as f:
        rows = list(csv.DictReader(f))

    assert list(rows[0].keys()) == RESULT_FIELDS
    assert rows[0]["verified"] == "True"
    assert json.loads(rows[0]["features"]) == ["WiFi", "Terraza"]
    assert not _leftovers(tmp_path, "results.csv")


def test_render_results_lines():
    lines = render_results([_entity("1", verified=True, review_count=8), _entity("2", is_open=False)])
    assert lines[0] == "  1. Café 1 [verified] | Café | 4.5 (8) | 350 m | $$ | open"
    assert lines[1].endswith("| closed")


def test_render_summary_sorts_rejections():
    lines = render_summary(10, 4, {"rating": 2, "open_now": 4})
    assert lines == [
        "Fetched: 10",
        "Visible after filters: 4",
        "Filtered out:",
        "- open_now: 4",
        "- rating: 2",
    ]
    assert render_summary(0, 0, {}) == ["Fetched: 0", "Visible after filters: 0"]
