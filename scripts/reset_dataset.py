from __future__ import annotations

import asyncio

from personaltrainer.config import get_settings
from personaltrainer.logging_config import setup_logging
from personaltrainer.services.client import TrainerApi


async def _reset() -> bool:
    settings = get_settings()
    setup_logging(settings.log_level)
    async with TrainerApi(settings) as api:
        result = await api.reset()
        customers = await api.customers.list() if result.ok else []
        trainings = await api.trainings.list() if result.ok else []

    print(f"base_url={settings.api_root}")
    print(f"reset_ok={result.ok}")
    print(f"customers={len(customers)} trainings={len(trainings)}")
    return result.ok


def main() -> int:
    return 0 if asyncio.run(_reset()) else 1


if __name__ == "__main__":
    raise SystemExit(main())
