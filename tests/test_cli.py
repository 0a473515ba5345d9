from __future__ import annotations

import json
from pathlib import Path

import pytest

from okupsell.client.console.main import main

BUNDLE = "com.okvideo.pro"


def _run(tmp_path: Path, *args: str) -> int:
    return main(["--userdata", str(tmp_path), "--secret", "cli-secret", *args])


def test_validate(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    assert _run(tmp_path, "validate") == 0
    assert capsys.readouterr().out.strip() == "OK"


def test_buy_then_paywall_shows_ownership(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    assert _run(tmp_path, "buy", BUNDLE) == 0
    out = capsys.readouterr().out
    assert "Purchased com.okvideo.pro (txn_000001)." in out
    assert "Everything is unlocked." in out

    assert _run(tmp_path, "paywall") == 0
    out = capsys.readouterr().out
    assert out.count("owned") == 3

    ledger = json.loads((tmp_path / "ledger.json").read_text(encoding="utf-8"))
    assert [r["product_id"] for r in ledger["records"]] == [BUNDLE]
    assert ledger["records"][0]["finished"] is True


def test_cancelled_and_failed_purchases(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    assert _run(tmp_path, "buy", "com.okvideo.editor", "--outcome", "cancelled") == 0
    assert "No purchase made" in capsys.readouterr().out

    assert _run(tmp_path, "buy", "com.okvideo.editor", "--outcome", "failed") == 1
    assert "could not be completed" in capsys.readouterr().err


def test_unknown_product(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    assert _run(tmp_path, "buy", "com.okvideo.nothing") == 1
    assert "Unknown product" in capsys.readouterr().err


def test_refund_and_restore(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    assert _run(tmp_path, "grant", "com.okvideo.editor") == 0
    assert "grant: com.okvideo.editor" in capsys.readouterr().out

    assert _run(tmp_path, "restore") == 0
    assert "Restored: com.okvideo.editor" in capsys.readouterr().out

    assert _run(tmp_path, "refund", "txn_000001") == 0
    capsys.readouterr()
    assert _run(tmp_path, "restore") == 0
    assert "nothing to restore" in capsys.readouterr().out

    assert _run(tmp_path, "refund", "txn_000099") == 1
    assert "No refundable transaction" in capsys.readouterr().err


def test_pending_purchase_then_approval(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    assert _run(tmp_path, "buy", "com.okvideo.watermark", "--outcome", "pending") == 0
    capsys.readouterr()
    assert _run(tmp_path, "approve", "com.okvideo.watermark") == 0
    out = capsys.readouterr().out
    watermark = next(line for line in out.splitlines() if "Remove Watermark" in line)
    assert watermark.endswith("owned")


def test_history_lists_events(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    assert _run(tmp_path, "buy", BUNDLE) == 0
    capsys.readouterr()
    assert _run(tmp_path, "history") == 0
    out = capsys.readouterr().out
    assert "products_loaded" in out
    assert "purchase" in out


def test_wrong_secret_does_not_see_purchases(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    assert _run(tmp_path, "buy", BUNDLE) == 0
    capsys.readouterr()
    assert main(["--userdata", str(tmp_path), "--secret", "other", "restore"]) == 0
    assert "nothing to restore" in capsys.readouterr().out
