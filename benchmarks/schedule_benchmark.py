import time
from datetime import datetime, timedelta
from pathlib import Path

import sys

sys.path.append(str(Path(__file__).resolve().parents[1]))

from income.schedule import ScheduleConfig, upcoming_occurrences, recent_occurrences


def build_configs(n_sources: int) -> list[ScheduleConfig]:
    configs = []
    for i in range(n_sources):
        kind = i % 4
        if kind == 0:
            configs.append(ScheduleConfig(frequency="WEEKLY", schedule_weekday=i % 7, amount=100))
        elif kind == 1:
            configs.append(
                ScheduleConfig(
                    frequency="BIWEEKLY",
                    schedule_week="LAST",
                    schedule_weekday=i % 7,
                    amount=400,
                )
            )
        elif kind == 2:
            configs.append(
                ScheduleConfig(frequency="MONTHLY", schedule_days=[1, 15, 31], amount=3000)
            )
        else:
            configs.append(
                ScheduleConfig(
                    frequency="MONTHLY",
                    schedule_days=[5, 20],
                    amount=1000,
                    use_manual_amounts=True,
                    schedule_day_amounts={"5": 300, "20": 700},
                )
            )
    return configs


def run():
    configs = build_configs(1000)
    start = datetime(2025, 1, 1)
    t0 = time.perf_counter()
    upcoming = sum(len(list(upcoming_occurrences(c, start, 365))) for c in configs)
    t1 = time.perf_counter()
    recent = sum(len(recent_occurrences(c, start + timedelta(days=365), 90)) for c in configs)
    t2 = time.perf_counter()
    print(f"Generated {upcoming} upcoming payments in {t1 - t0:.4f}s")
    print(f"Generated {recent} recent payments in {t2 - t1:.4f}s")


if __name__ == "__main__":
    run()
