"""
Employee name normalization and roster matching for biometric scan logs.
"""

import logging
import re
from collections import defaultdict
from typing import Dict, Iterable, List, Optional, Set

from app.models.user import User

logger = logging.getLogger(__name__)

_WHITESPACE = re.compile(r'\s+')


def normalize_name(raw_name: Optional[str]) -> str:
    """
    產生員工姓名的比對鍵：轉小寫、去除前後空白、合併中間空白。

    不同打卡機對同一員工的內部編號不一致，身分一律以此比對鍵判斷。
    結果具冪等性：normalize_name(normalize_name(x)) == normalize_name(x)。
    """
    if not raw_name:
        return ""
    return _WHITESPACE.sub(' ', raw_name.strip()).lower()


def _fold(raw_name: Optional[str]) -> str:
    # 名冊比對用：移除句點與逗號，連字號視為空白
    if not raw_name:
        return ""
    return normalize_name(raw_name.replace('.', '').replace(',', ' ').replace('-', ' '))


class RosterIndex:
    """
    員工名冊索引，將打卡機上的姓名對應到員工。

    打卡機常見的姓名寫法包括「姓 名」、「名 姓」、含中間名或中間名縮寫，
    以及截斷的名字。比對依精確程度分層進行，同一層中對應到多位員工時
    視為無法判定，不回傳任何員工。
    """

    def __init__(self, users: Iterable[User]):
        self._tiers: List[Dict[str, Set[int]]] = [defaultdict(set) for _ in range(3)]
        self._users: Dict[int, User] = {}

        for user in users:
            self._users[user.id] = user
            for tier, patterns in enumerate(self.name_patterns(user.first_name, user.middle_name, user.last_name)):
                for pattern in patterns:
                    self._tiers[tier][pattern].add(user.id)

        logger.debug(f"Roster index built with {len(self._users)} users")

    @staticmethod
    def name_patterns(first_name: str, middle_name: Optional[str], last_name: str) -> List[List[str]]:
        """
        列出一位員工在打卡機上可能出現的姓名寫法（已正規化）。

        Returns:
            三層寫法清單：完整姓名、縮寫或複合名字、僅姓氏或截斷名字
        """
        first = _fold(first_name)
        middle = _fold(middle_name)
        last = _fold(last_name)
        if not first or not last:
            return [[], [], []]

        exact = [f"{first} {last}", f"{last} {first}"]
        partial = []
        loose = [last, f"{last} {first[0]}", f"{last} {first[:2]}"]

        if middle:
            exact.extend([f"{first} {middle} {last}", f"{last} {first} {middle}"])
            partial.extend([f"{first} {middle[0]} {last}", f"{last} {first} {middle[0]}"])

        first_words = first.split(' ')
        if len(first_words) > 1:
            # 複合名字，打卡機通常只登錄第一個字
            partial.extend([f"{first_words[0]} {last}", f"{last} {first_words[0]}"])

        return [exact, partial, loose]

    def match(self, raw_name: str) -> Optional[User]:
        """
        以打卡機姓名找出員工。

        Args:
            raw_name: 打卡機上的原始姓名

        Returns:
            唯一對應的員工；沒有對應或對應到多位員工時回傳 None
        """
        key = _fold(raw_name)
        if not key:
            return None

        for tier in self._tiers:
            user_ids = tier.get(key)
            if not user_ids:
                continue
            if len(user_ids) == 1:
                return self._users[next(iter(user_ids))]
            logger.warning(f"Ambiguous roster match for '{raw_name}': {len(user_ids)} candidates")
            return None

        return None

    def __len__(self) -> int:
        return len(self._users)
