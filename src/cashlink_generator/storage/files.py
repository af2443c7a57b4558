"""Batch CSV files: one cashlink per line.

Columns: ``token,shortLink,imageFile,cashlinkUrl,privateKeyBase64``. The
cashlink is rebuilt from its URL alone, the private key column is only
checked against it.
"""

from __future__ import annotations

import csv
import logging
from pathlib import Path

from cashlink_generator.cashlink import Cashlink
from cashlink_generator.encoding import from_base64_url, to_base64_url
from cashlink_generator.errors import CashlinkError, MalformedInput
from cashlink_generator.models.records import ImportedBatch

log = logging.getLogger(__name__)

_COLUMNS = 5


def import_cashlinks(path: str | Path) -> ImportedBatch:
    """Read a batch file. Any bad line aborts the whole import."""
    path = Path(path).expanduser()
    batch = ImportedBatch(cashlinks={})
    with open(path, newline="", encoding="utf-8") as f:
        for line_number, row in enumerate(csv.reader(f), start=1):
            if not row or not "".join(row).strip():
                continue
            if len(row) != _COLUMNS:
                raise MalformedInput(
                    f"{path}:{line_number}: expected {_COLUMNS} columns, got {len(row)}"
                )
            token, short_link, image_file, url, private_key = (c.strip() for c in row)
            try:
                cashlink = Cashlink.parse(url)
                if private_key and from_base64_url(private_key) != cashlink.key_pair.private_key:
                    raise MalformedInput("private key does not match the cashlink")
            except CashlinkError as exc:
                raise MalformedInput(f"{path}:{line_number}: {exc}") from exc

            batch.cashlinks[token] = cashlink
            if short_link:
                batch.short_links[token] = short_link
            if image_file:
                batch.image_files[token] = image_file

    log.info("Loaded %d cashlinks from %s", len(batch.cashlinks), path)
    return batch


def export_cashlinks(
    cashlinks: dict[str, Cashlink],
    path: str | Path,
    short_links: dict[str, str] | None = None,
    image_files: dict[str, str] | None = None,
) -> Path:
    path = Path(path).expanduser()
    path.parent.mkdir(parents=True, exist_ok=True)
    short_links = short_links or {}
    image_files = image_files or {}
    with open(path, "w", newline="", encoding="utf-8") as f:
        writer = csv.writer(f, lineterminator="\n")
        for token, cashlink in cashlinks.items():
            writer.writerow([
                token,
                short_links.get(token, ""),
                image_files.get(token, ""),
                cashlink.render(),
                to_base64_url(cashlink.key_pair.private_key),
            ])
    log.info("Exported %d cashlinks to %s", len(cashlinks), path)
    return path
