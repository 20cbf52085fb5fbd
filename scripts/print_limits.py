#!/usr/bin/env python3
"""Print batch and resolver limits (from config). Run from repo root: python scripts/print_limits.py"""
import sys
from pathlib import Path

REPO_ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(REPO_ROOT))

from app.core.config import settings


def main():
    """Print batch limits (MAX_BATCH_SIZE, CONCURRENCY_LIMIT, UNIT_COST, retention) and resolver/cache thresholds."""
    print("Batch & API limits")
    print("------------------")
    print(f"  MAX_BATCH_SIZE            = {settings.max_batch_size} (screenshots per batch)")
    print(f"  CONCURRENCY_LIMIT         = {settings.concurrency_limit} (screenshots per wave)")
    print(f"  UNIT_COST                 = {settings.unit_cost} (estimated cost per screenshot)")
    print(f"  JOB_RETENTION_SECONDS     = {settings.job_retention_seconds} s (finished jobs stay queryable)")
    print(f"  MAX_PAYLOAD_MB            = {settings.max_payload_mb} MB (single /process image)")
    print(f"  EXTERNAL_TIMEOUT_SECONDS  = {settings.external_timeout_seconds} s (per external call)")
    print("")
    print("Resolver & cache gate")
    print("---------------------")
    print(f"  HIGH_CONFIDENCE_THRESHOLD = {settings.high_confidence_threshold} (stop searching above this)")
    print(f"  MIN_ACCEPT_THRESHOLD      = {settings.min_accept_threshold} (reject matches at or below this)")
    print(f"  W_TITLE / W_CHANNEL       = {settings.title_weight} / {settings.channel_weight}")
    print(f"  ANCHOR_BONUSES            = {len(settings.anchor_bonuses)} keywords")
    print(f"  FALLBACK_QUERIES          = {len(settings.fallback_queries)} queries")
    print(f"  MIN_ANALYSIS_LENGTH       = {settings.min_analysis_length} chars")
    print(f"  MIN_RAW_MATERIAL_LENGTH   = {settings.min_raw_material_length} chars")
    print("")
    print("Env: see .env.example")


if __name__ == "__main__":
    main()
