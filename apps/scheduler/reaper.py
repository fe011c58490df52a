# Standalone lease sweep: python -m apps.scheduler.reaper [--once] [--interval 30]
# Use when the API runs with FARMJOBS_REAPER_INTERVAL_SECONDS=0 (e.g. several API replicas).
import argparse

from apps.api.deps import build_reaper, build_store, get_config
from libs.observability.logging import setup_logging

if __name__ == "__main__":
    p = argparse.ArgumentParser()
    p.add_argument("--once", action="store_true")
    p.add_argument("--interval", type=float, default=30.0)
    args = p.parse_args()

    cfg = get_config()
    setup_logging(cfg.LOG_LEVEL)
    reaper = build_reaper(build_store(cfg), cfg)
    if args.once:
        print(reaper.sweep().model_dump_json())
    else:
        try:
            reaper.run_forever(args.interval)
        except KeyboardInterrupt:
            reaper.stop()
