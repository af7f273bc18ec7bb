# taipulse/constants.py

from typing import Dict, List

DEFAULT_SECTOR_NAME = "市場標的"
ETF_SECTOR_NAME = "ETF 戰略精選"

# Index symbols (Yahoo chart format)
TAIEX_SYMBOL = "^TWII"
NASDAQ_SYMBOL = "^IXIC"
SOX_SYMBOL = "^SOX"

INDEX_NAMES: Dict[str, str] = {
    TAIEX_SYMBOL: "加權指數",
    NASDAQ_SYMBOL: "那斯達克",
    SOX_SYMBOL: "費城半導體",
}

# Ordered: the market pulse sweep only walks the first few sectors
SECTOR_MAP: Dict[str, List[str]] = {
    "半導體": ["2330", "2454", "2303", "3711", "2379", "3034", "2408", "3443"],
    "AI 伺服器": ["2382", "3231", "2356", "6669", "2317", "2376", "3017"],
    "金融": ["2881", "2882", "2891", "2886", "2884", "5880"],
    "航運": ["2603", "2609", "2615", "2618", "2610"],
    ETF_SECTOR_NAME: ["0050", "0056", "00878", "00919", "006208"],
}

ALL_STOCK_MAP: Dict[str, str] = {
    "2330": "台積電", "2454": "聯發科", "2303": "聯電", "3711": "日月光投控",
    "2379": "瑞昱", "3034": "聯詠", "2408": "南亞科", "3443": "創意",
    "2382": "廣達", "3231": "緯創", "2356": "英業達", "6669": "緯穎",
    "2317": "鴻海", "2376": "技嘉", "3017": "奇鋐",
    "2881": "富邦金", "2882": "國泰金", "2891": "中信金", "2886": "兆豐金",
    "2884": "玉山金", "5880": "合庫金",
    "2603": "長榮", "2609": "陽明", "2615": "萬海", "2618": "長榮航", "2610": "華航",
    "0050": "元大台灣50", "0056": "元大高股息", "00878": "國泰永續高股息",
    "00919": "群益台灣精選高息", "006208": "富邦台50",
}

# TWSE tick ladder: (upper bound exclusive, tick)
TICK_LADDER = [
    (10.0, 0.01),
    (50.0, 0.05),
    (100.0, 0.1),
    (500.0, 0.5),
    (1000.0, 1.0),
]
TOP_TICK = 5.0


def get_sector_name(sid: str) -> str:
    for name, ids in SECTOR_MAP.items():
        if sid in ids:
            return name
    return DEFAULT_SECTOR_NAME


def tick_size(price: float) -> float:
    for bound, tick in TICK_LADDER:
        if price < bound:
            return tick
    return TOP_TICK


def round_to_tick(price: float) -> float:
    """Rounds a price to the nearest valid TWSE tick."""
    if price <= 0:
        return 0.0
    tick = tick_size(price)
    return round(round(price / tick) * tick, 2)
