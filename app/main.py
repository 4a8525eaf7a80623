import sys
import os
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import argparse
import asyncio
import json
import logging
from dataclasses import asdict

from finance_agents.anomalies import get_anomaly_summary
from finance_agents.config import DEFAULT_CONFIG, load_config
from finance_agents.events import AGENT_RUN_COMPLETED, EventBus
from finance_agents.notifications import get_notification_summary
from finance_agents.runner import run_agents_and_save
from finance_agents.store import InMemoryAgentStore

logger = logging.getLogger("finance_agents.app")


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="Run the finance agents over a JSON seed.")
    parser.add_argument("--seed", default="data/seed.json", help="path to the users seed file")
    parser.add_argument("--config", help="JSON file with threshold overrides")
    parser.add_argument("--user", action="append", help="only run for this user id (repeatable)")
    parser.add_argument("--log-level", default="INFO")
    return parser.parse_args(argv)


async def run(args) -> dict:
    config = load_config(args.config) if args.config else DEFAULT_CONFIG
    store = InMemoryAgentStore.from_seed(args.seed)
    bus = EventBus()
    bus.subscribe(AGENT_RUN_COMPLETED, lambda event, payload: logger.info("run completed: %s", payload))

    users = args.user or store.user_ids()
    report = {}
    for user_id in users:
        result = await run_agents_and_save(user_id, store, config=config, bus=bus)
        report[user_id] = {
            "anomalies": asdict(get_anomaly_summary(result.anomalies)),
            "notifications": asdict(get_notification_summary(result.notifications)),
            "inbox": store.list_notifications(user_id),
            "unread": store.unread_count(user_id),
        }
    return report


def main(argv=None) -> None:
    args = parse_args(argv)
    logging.basicConfig(level=args.log_level.upper(), format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    report = asyncio.run(run(args))
    print(json.dumps(report, indent=2, default=str))


if __name__ == "__main__":
    main()
