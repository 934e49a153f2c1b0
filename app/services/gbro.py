"""
Good-behavior roll-off (GBRO) replay.

After a run of clean days with no new violation, the newest active
GBRO-eligible points roll off. The next roll-off follows after another
clean run; any violation inside a run restarts the count from that
violation. The replay is a pure function of the point history so it can be
rerun from scratch whenever a point is excused or expires.
"""

from datetime import date, timedelta
from typing import Iterable, List, NamedTuple, Optional, Sequence


class PointSnapshot(NamedTuple):
    """重播 GBRO 所需的點數資料"""
    id: int
    shift_date: date
    eligible: bool
    active: bool


class RollOff(NamedTuple):
    gbro_date: date
    point_ids: List[int]


class GbroReplay(NamedTuple):
    roll_offs: List[RollOff]
    # 最後一次 GBRO 或最後一次違規的日期，下一次 GBRO 由此起算
    anchor: Optional[date]
    remaining_ids: List[int]


def replay_gbro(points: Sequence[PointSnapshot], violation_dates: Iterable[date], as_of: date,
                gbro_days: int = 60, points_per_roll_off: int = 2) -> GbroReplay:
    """
    依日期順序重播點數歷史，算出每次 GBRO 應移除的點數。

    Args:
        points: 可參與 GBRO 的點數（active 為 False 的點數不會被移除）
        violation_dates: 所有未被豁免的違規日期（會重置無違規天數）
        as_of: 計算基準日，晚於此日的 GBRO 不會發生
        gbro_days: 無違規天數門檻
        points_per_roll_off: 每次 GBRO 移除的點數數量

    Returns:
        GbroReplay
    """
    violations = sorted(set(violation_dates))
    if not violations:
        return GbroReplay([], None, [])

    pending = sorted(
        (point for point in points if point.active and point.eligible),
        key=lambda point: (point.shift_date, point.id),
    )
    roll_offs: List[RollOff] = []
    anchor = violations[0]
    period = timedelta(days=gbro_days)

    while True:
        next_gbro = anchor + period
        intervening = [violation for violation in violations if anchor < violation < next_gbro]
        if intervening:
            anchor = intervening[-1]
            continue

        if next_gbro > as_of:
            break

        candidates = [point for point in pending if point.shift_date < next_gbro]
        if not candidates:
            # 剩下的點數都在未來，等下一筆違規
            later = [violation for violation in violations if violation >= next_gbro]
            if not later:
                anchor = next_gbro
                break
            anchor = later[0]
            continue

        rolled = sorted(candidates, key=lambda point: (point.shift_date, point.id), reverse=True)[:points_per_roll_off]
        rolled_ids = {point.id for point in rolled}
        pending = [point for point in pending if point.id not in rolled_ids]
        roll_offs.append(RollOff(next_gbro, [point.id for point in rolled]))
        anchor = next_gbro

    return GbroReplay(roll_offs, anchor, [point.id for point in pending])


def projected_gbro_dates(remaining: Sequence[PointSnapshot], anchor: Optional[date],
                         gbro_days: int = 60, points_per_roll_off: int = 2) -> dict:
    """
    計算尚未移除的點數預計的 GBRO 日期。

    最新的幾筆點數會在下一次 GBRO 移除，其餘點數尚無預計日期。

    Returns:
        point_id -> 預計 GBRO 日期（或 None）
    """
    ordered = sorted(remaining, key=lambda point: (point.shift_date, point.id), reverse=True)
    projected = {point.id: None for point in ordered}
    if anchor is None:
        return projected

    next_gbro = anchor + timedelta(days=gbro_days)
    for point in ordered[:points_per_roll_off]:
        projected[point.id] = next_gbro
    return projected
