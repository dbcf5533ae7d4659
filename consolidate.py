#!/usr/bin/env python3
"""
Consolidate near-duplicate context entries.

Groups entries whose embeddings are cosine-similar above a threshold and
merges each group into one entry with an LLM-written summary. A backup of the
whole database is taken before anything is deleted.

Usage:
    python consolidate.py --dry-run                 # Preview groups
    python consolidate.py --similarity 0.9          # Merge with a stricter threshold
"""

from __future__ import annotations

import argparse
import shutil
import sys
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Callable

import numpy as np

from config import Config, validate_config
from embeddings import Embeddings
from i18n import t
from llm import generate
from models import ContextEntry
from store import ContextStore
from utils import log, now_ms

MIN_MERGED_SUMMARY_CHARS = 10
EMBED_ATTEMPTS = 2


@dataclass
class ConsolidationReport:
    entries_before: int = 0
    clusters: int = 0
    merged: int = 0
    removed: int = 0
    aborted: int = 0
    backup_dir: Path | None = None

    @property
    def entries_after(self) -> int:
        return self.entries_before - self.removed


def cosine_similarity(a: list[float], b: list[float]) -> float:
    """Cosine similarity between two vectors."""
    va = np.asarray(a, dtype=float)
    vb = np.asarray(b, dtype=float)
    denom = np.linalg.norm(va) * np.linalg.norm(vb)
    if denom == 0:
        return 0.0
    return float(np.dot(va, vb) / denom)


def group_similar(entries: list[ContextEntry], threshold: float) -> list[list[ContextEntry]]:
    """Greedy clustering in scan order.

    Each unprocessed entry seeds a cluster and pulls in every later
    unprocessed entry at least ``threshold`` similar to the seed. Singletons
    are dropped.
    """
    used: set[str] = set()
    groups: list[list[ContextEntry]] = []

    for i, seed in enumerate(entries):
        if seed.id in used:
            continue
        group = [seed]
        used.add(seed.id)
        for other in entries[i + 1:]:
            if other.id in used:
                continue
            if cosine_similarity(seed.vector, other.vector) >= threshold:
                group.append(other)
                used.add(other.id)
        if len(group) > 1:
            groups.append(group)

    return groups


def newest_member(group: list[ContextEntry]) -> ContextEntry:
    return max(group, key=lambda e: e.timestamp)


def merge_summaries(group: list[ContextEntry], generate_fn: Callable[[str], str], locale: str = "en") -> str:
    """LLM-merged summary for a group; the newest member's summary when that fails."""
    entries_text = "\n".join(f"[{i}] {e.summary}" for i, e in enumerate(group, 1))
    prompt = f"{t(locale).merge_prompt}\n\n{entries_text}"
    try:
        text = generate_fn(prompt).strip()
    except Exception as e:
        log(f"Merge generation failed, keeping newest summary: {e}", "WARNING")
        return newest_member(group).summary
    if len(text) < MIN_MERGED_SUMMARY_CHARS:
        return newest_member(group).summary
    return text


def build_merged_entry(group: list[ContextEntry], summary: str, vector: list[float]) -> ContextEntry:
    """One entry standing in for the whole group.

    Origin metadata, timestamp and deep-recall references come from the newest
    member; topics are unioned and action/decision flags are OR-ed.
    """
    newest = newest_member(group)
    topics = list(dict.fromkeys(topic for e in group for topic in e.topics))
    return replace(
        newest,
        id="",
        summary=summary,
        vector=vector,
        has_tool_calls=any(e.has_tool_calls for e in group),
        has_decision=any(e.has_decision for e in group),
        topics=tuple(topics),
    )


def backup_database(db_path: Path, backup_dir: Path) -> None:
    if not db_path.exists():
        raise FileNotFoundError(f"Database path does not exist: {db_path}")
    print(f"Backing up database to: {backup_dir}")
    shutil.copytree(db_path, backup_dir)
    print("Backup complete.")


def _embed_with_retry(embed_fn: Callable[[str], list[float]], text: str) -> list[float] | None:
    for attempt in range(1, EMBED_ATTEMPTS + 1):
        try:
            return embed_fn(text)
        except Exception as e:
            log(f"Embedding merged summary failed (attempt {attempt}/{EMBED_ATTEMPTS}): {e}", "WARNING")
    return None


def consolidate(
    store: ContextStore,
    threshold: float,
    generate_fn: Callable[[str], str],
    embed_fn: Callable[[str], list[float]],
    locale: str = "en",
    dry_run: bool = False,
    backup_dir: Path | None = None,
) -> ConsolidationReport:
    """Merge every similarity cluster in the store into a single entry.

    In dry-run mode only the clustering runs: no backup, no generation, no
    embedding and no store mutation.
    """
    report = ConsolidationReport()

    if not dry_run:
        report.backup_dir = backup_dir or store.db_path.with_name(f"{store.db_path.name}.backup.{now_ms()}")
        backup_database(store.db_path, report.backup_dir)
    else:
        print("[DRY RUN] Skipping backup.")

    entries = store.scan()
    report.entries_before = len(entries)
    print(f"Loaded {len(entries)} entries.")
    if len(entries) < 2:
        print("Not enough entries to deduplicate.")
        return report

    groups = group_similar(entries, threshold)
    report.clusters = len(groups)
    print(f"Found {len(groups)} group(s) of similar entries to merge.")
    if not groups:
        print("No duplicates found. Database is clean.")
        return report

    for gi, group in enumerate(groups, 1):
        summaries = "\n".join(f'  "{e.summary}"' for e in group)
        print(f"\nGroup {gi} ({len(group)} entries):\n{summaries}")

        if dry_run:
            print(f"  [DRY RUN] Would merge {len(group)} entries.")
            report.removed += len(group) - 1
            continue

        merged_summary = merge_summaries(group, generate_fn, locale)
        print(f'  Merged: "{merged_summary}"')

        # Embed before deleting so a failed embedding leaves the group intact.
        vector = _embed_with_retry(embed_fn, merged_summary)
        if vector is None:
            print(f"  Aborted group {gi}: could not embed merged summary, entries left untouched.")
            report.aborted += 1
            continue

        for entry in group:
            store.delete_by_id(entry.id)
        store.insert(build_merged_entry(group, merged_summary, vector))
        report.merged += 1
        report.removed += len(group) - 1

    return report


def run_consolidation(config: Config, similarity: float, dry_run: bool, backup_dir: Path | None) -> ConsolidationReport:
    store = ContextStore(config.db_path, config.embedding_dim, config.table_name)
    embeddings = Embeddings(config)
    report = consolidate(
        store,
        threshold=similarity,
        generate_fn=lambda prompt: generate(prompt, config, max_output_tokens=300),
        embed_fn=embeddings.embed,
        locale=config.locale,
        dry_run=dry_run,
        backup_dir=backup_dir,
    )

    print("\n" + "=" * 70)
    if dry_run:
        print(
            f"[DRY RUN] Would merge {report.clusters} group(s), "
            f"reducing {report.entries_before} entries to {report.entries_after}."
        )
        print("Run without --dry-run to apply.")
    else:
        print(
            f"Done. Merged {report.merged} group(s), reduced {report.entries_before} entries "
            f"to {report.entries_after} entries (removed {report.removed})."
        )
        if report.aborted:
            print(f"⚠ {report.aborted} group(s) aborted; backup at {report.backup_dir}")
    return report


def main():
    parser = argparse.ArgumentParser(
        description="Consolidate near-duplicate sliding context entries",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python consolidate.py --dry-run              # Preview groups
  python consolidate.py --similarity 0.9       # Merge with a stricter threshold
        """,
    )
    parser.add_argument("--db-path", type=Path, help="LanceDB directory (default: SLIDING_CONTEXT_DB_PATH)")
    parser.add_argument("--dry-run", action="store_true", help="Preview groups without changing anything")
    parser.add_argument("--backup-dir", type=Path, help="Backup location (default: <db>.backup.<ms>)")
    parser.add_argument("--similarity", type=float, help="Cosine threshold for grouping (default: 0.85)")
    parser.add_argument("--locale", choices=["en", "de"], help="Prompt language")

    args = parser.parse_args()

    config = Config()
    overrides = {}
    if args.db_path:
        overrides["db_path"] = args.db_path.expanduser()
    if args.locale:
        overrides["locale"] = args.locale
    if args.similarity is not None:
        overrides["consolidation_similarity"] = args.similarity
    config = replace(config, **overrides)

    try:
        validate_config(config)
        run_consolidation(config, config.consolidation_similarity, args.dry_run, args.backup_dir)
    except (ValueError, OSError) as e:
        print(f"Error: {e}")
        sys.exit(1)
    except KeyboardInterrupt:
        print("\n\nConsolidation cancelled")
        sys.exit(1)


if __name__ == "__main__":
    main()
