"""Server-side parsing of news article CSV uploads.

The file is read line by line: quoted fields may contain commas and doubled
quotes but never line breaks. Rows that do not line up with the header, or that
lack a headline or article text, are dropped and counted. So are rows the csv
module cannot split, such as a stray carriage return in an unquoted field.
"""

from __future__ import annotations

import csv
from dataclasses import dataclass, field
from typing import get_args

from annonest.annotate.schemas import ArticleInput, ArticleState
from annonest.core.errors import ValidationError


REQUIRED_COLUMNS = ("headline", "url", "source_name", "publish_date", "raw_text")
ARTICLE_STATES: tuple[str, ...] = get_args(ArticleState)


@dataclass(slots=True)
class ParsedUpload:
    articles: list[ArticleInput] = field(default_factory=list)
    skipped_rows: int = 0


def decode_upload(raw: bytes) -> str:
    try:
        return raw.decode("utf-8-sig")
    except UnicodeDecodeError as exc:
        raise ValidationError("upload must be UTF-8 encoded text") from exc


def split_line(line: str) -> list[str]:
    return next(csv.reader([line], skipinitialspace=False), [])


def parse_header(line: str) -> list[str]:
    return [cell.strip().lower().replace('"', "") for cell in line.split(",")]


def parse_articles_csv(text: str) -> ParsedUpload:
    lines = [line.rstrip("\r") for line in text.split("\n") if line.strip()]
    if len(lines) < 2:
        raise ValidationError("file must contain a header row and at least one data row")

    headers = parse_header(lines[0])
    missing = [column for column in REQUIRED_COLUMNS if column not in headers]
    if missing:
        raise ValidationError(
            f"missing required columns: {', '.join(missing)}",
            details={"missing_columns": missing},
        )

    parsed = ParsedUpload()
    for line in lines[1:]:
        try:
            values = split_line(line)
        except csv.Error:
            parsed.skipped_rows += 1
            continue
        if len(values) != len(headers):
            parsed.skipped_rows += 1
            continue

        row = {header: value.strip() for header, value in zip(headers, values)}
        article = article_from_row(row)
        if article is None:
            parsed.skipped_rows += 1
            continue
        parsed.articles.append(article)

    return parsed


def article_from_row(row: dict[str, str]) -> ArticleInput | None:
    headline = row.get("headline", "")
    raw_text = row.get("raw_text", "")
    if not headline or not raw_text:
        return None

    state = row.get("article_state") or "pending"
    if state not in ARTICLE_STATES:
        return None

    return ArticleInput(
        headline=headline,
        url=row.get("url") or None,
        source_name=row.get("source_name") or None,
        publish_date=row.get("publish_date") or None,
        raw_text=raw_text,
        cleaned_text=row.get("cleaned_text") or None,
        language=row.get("language") or None,
        article_state=state,  # type: ignore[arg-type]
    )
