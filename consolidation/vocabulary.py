# consolidation/vocabulary.py
"""Fixed vocabularies and lookup tables used to normalize extracted entities.

Everything here is plain data so the tables can be tuned without touching
the matching algorithms in :mod:`consolidation.normalization`.
"""

from __future__ import annotations

from enum import Enum


class AgeBracket(str, Enum):
    """Canonical visual-age brackets."""

    CHILD = "0-6"
    JUVENILE = "7-14"
    YOUTH = "15-25"
    PRIME = "26-40"
    MIDDLE = "41-60"
    SENIOR = "60+"
    ELDER = "80+"
    UNKNOWN = "unknown"


class CharacterRole(str, Enum):
    PRIMARY = "primary"
    SECONDARY = "secondary"
    SUPPORTING = "supporting"
    EXTRA = "extra"


class SceneStructure(str, Enum):
    INTERIOR = "interior"
    EXTERIOR = "exterior"


class SceneType(str, Enum):
    CORE_LOCATION = "core-location"
    PLOT_NODE = "plot-node"
    TRANSITION = "transition"


# Lower index = more important.
ROLE_IMPORTANCE: tuple[CharacterRole, ...] = (
    CharacterRole.PRIMARY,
    CharacterRole.SECONDARY,
    CharacterRole.SUPPORTING,
    CharacterRole.EXTRA,
)

# Display labels written by earlier versions of the tool.
AGE_LABEL_ALIASES: dict[str, AgeBracket] = {
    "幼年 (0-6岁)": AgeBracket.CHILD,
    "少年 (7-14岁)": AgeBracket.JUVENILE,
    "青年 (15-25岁)": AgeBracket.YOUTH,
    "壮年 (26-40岁)": AgeBracket.PRIME,
    "中年 (41-60岁)": AgeBracket.MIDDLE,
    "老年 (60岁以上)": AgeBracket.SENIOR,
    "古稀/耄耋 (80岁以上)": AgeBracket.ELDER,
    "外表无法判断": AgeBracket.UNKNOWN,
    "0-6": AgeBracket.CHILD,
    "7-14": AgeBracket.JUVENILE,
    "15-25": AgeBracket.YOUTH,
    "26-40": AgeBracket.PRIME,
    "41-60": AgeBracket.MIDDLE,
    "60+": AgeBracket.SENIOR,
    "80+": AgeBracket.ELDER,
    "unknown": AgeBracket.UNKNOWN,
}

ROLE_LABEL_ALIASES: dict[str, CharacterRole] = {
    "主要角色": CharacterRole.PRIMARY,
    "主角": CharacterRole.PRIMARY,
    "main": CharacterRole.PRIMARY,
    "protagonist": CharacterRole.PRIMARY,
    "次要角色": CharacterRole.SECONDARY,
    "配角": CharacterRole.SUPPORTING,
    "路人甲": CharacterRole.EXTRA,
    "路人": CharacterRole.EXTRA,
    "minor": CharacterRole.EXTRA,
    "background": CharacterRole.EXTRA,
}

STRUCTURE_LABEL_ALIASES: dict[str, SceneStructure] = {
    "内景": SceneStructure.INTERIOR,
    "外景": SceneStructure.EXTERIOR,
    "indoor": SceneStructure.INTERIOR,
    "outdoor": SceneStructure.EXTERIOR,
    "int": SceneStructure.INTERIOR,
    "ext": SceneStructure.EXTERIOR,
}

SCENE_TYPE_LABEL_ALIASES: dict[str, SceneType] = {
    "核心据点": SceneType.CORE_LOCATION,
    "剧情节点": SceneType.PLOT_NODE,
    "过场": SceneType.TRANSITION,
    "core location": SceneType.CORE_LOCATION,
    "plot node": SceneType.PLOT_NODE,
}

# --- Age: spelled-out numerals -------------------------------------------

_CN_DIGITS = ("一", "二", "三", "四", "五", "六", "七", "八", "九")


def _build_chinese_numerals() -> dict[str, int]:
    table: dict[str, int] = {}
    for value in range(1, 101):
        tens, ones = divmod(value, 10)
        if value == 100:
            word = "一百"
        elif tens == 0:
            word = _CN_DIGITS[ones - 1]
        else:
            word = ("" if tens == 1 else _CN_DIGITS[tens - 1]) + "十"
            if ones:
                word += _CN_DIGITS[ones - 1]
        table[word] = value
    table["两"] = 2
    return table


_EN_ONES = (
    "one", "two", "three", "four", "five", "six", "seven", "eight", "nine",
    "ten", "eleven", "twelve", "thirteen", "fourteen", "fifteen", "sixteen",
    "seventeen", "eighteen", "nineteen",
)  # fmt: skip
_EN_TENS = ("twenty", "thirty", "forty", "fifty", "sixty", "seventy", "eighty", "ninety")


def _build_english_numerals() -> dict[str, int]:
    table = {word: idx + 1 for idx, word in enumerate(_EN_ONES)}
    for idx, tens_word in enumerate(_EN_TENS):
        tens_value = (idx + 2) * 10
        table[tens_word] = tens_value
        for ones in range(1, 10):
            table[f"{tens_word}-{_EN_ONES[ones - 1]}"] = tens_value + ones
            table[f"{tens_word} {_EN_ONES[ones - 1]}"] = tens_value + ones
    table["one hundred"] = 100
    table["a hundred"] = 100
    table["hundred"] = 100
    return table


CHINESE_NUMERALS: dict[str, int] = _build_chinese_numerals()
ENGLISH_NUMERALS: dict[str, int] = _build_english_numerals()

# A bare single-digit word ("一个老人" / "one old man") is too ambiguous to
# read as an age; these only count when followed by one of the units below.
AGE_UNITS: tuple[str, ...] = ("岁", "歲", "周岁", "year", "yr")

# --- Age: descriptive keywords -------------------------------------------

# Checked in order; the first bracket with a matching term wins.
AGE_KEYWORDS: tuple[tuple[AgeBracket, tuple[str, ...]], ...] = (
    (
        AgeBracket.ELDER,
        ("古稀", "耄耋", "八旬", "九旬", "期颐", "octogenarian", "nonagenarian",
         "centenarian", "eighties", "nineties", "very old", "ancient"),
    ),
    (
        AgeBracket.CHILD,
        ("婴儿", "婴孩", "幼儿", "幼童", "孩童", "稚童", "襁褓", "幼",
         "infant", "baby", "toddler", "newborn"),
    ),
    (AgeBracket.YOUTH, ("少年气",)),
    (
        AgeBracket.JUVENILE,
        ("少年", "少女", "学生", "校服", "孩子", "child", "kid", "schoolboy",
         "schoolgirl", "preteen", "boy", "girl"),
    ),
    (
        AgeBracket.YOUTH,
        ("青年", "年轻", "稚嫩", "弱冠", "及笄", "teenager", "teen", "adolescent",
         "twenties", "young adult", "youthful", "young"),
    ),
    (AgeBracket.PRIME, ("壮年", "而立", "thirties", "prime")),
    (
        AgeBracket.MIDDLE,
        ("中年", "不惑", "知天命", "forties", "fifties", "middle-aged", "middle aged"),
    ),
    (
        AgeBracket.SENIOR,
        ("老年", "老者", "老人", "老妇", "老翁", "花甲", "年迈", "苍老", "白发",
         "皱纹", "老", "sixties", "seventies", "elderly", "wrinkled", "wrinkles",
         "white-haired", "grey-haired", "gray-haired", "aged", "senior", "old"),
    ),
)  # fmt: skip

# --- Weapon / clothing similarity ----------------------------------------

WEAPON_SYNONYMS: dict[str, tuple[str, ...]] = {
    "匕首": ("短刀", "短剑", "匕"),
    "短刀": ("匕首", "短剑"),
    "长剑": ("宝剑", "剑"),
    "弓": ("长弓", "弓箭"),
    "dagger": ("knife", "dirk", "stiletto"),
    "knife": ("dagger",),
    "bow": ("longbow", "shortbow"),
    "spear": ("lance", "pike"),
    "staff": ("rod", "quarterstaff"),
}

CLOTHING_PHASE_SYNONYMS: dict[str, tuple[str, ...]] = {
    "大婚": ("婚礼", "婚宴", "结婚", "成婚"),
    "婚礼": ("大婚", "婚宴", "结婚", "成婚"),
    "夜行": ("夜间行动", "夜行装", "夜间", "夜晚行动"),
    "夜间行动": ("夜行", "夜行装", "夜间", "夜晚行动"),
    "战斗": ("战斗官服", "战斗时", "作战", "战斗装"),
    "战斗官服": ("战斗", "战斗时", "作战"),
    "日常": ("常服", "平时", "平常", "日常服装"),
    "常服": ("日常", "平时", "平常"),
    "伪装": ("乔装", "乔装打扮", "易容"),
    "乔装": ("伪装", "乔装打扮", "易容"),
    "初期": ("早期", "前期", "开始"),
    "中期": ("中段", "中期阶段"),
    "知府": ("知府官服", "知府时"),
    "巡抚": ("巡抚官服", "巡抚时"),
    "起床": ("刚起床", "醒来"),
    "wedding": ("marriage ceremony", "marriage", "nuptials", "bridal"),
    "marriage ceremony": ("wedding", "marriage", "nuptials"),
    "battle": ("combat", "fighting", "war"),
    "combat": ("battle", "fighting"),
    "daily": ("everyday", "casual", "ordinary"),
    "everyday": ("daily", "casual"),
    "disguise": ("undercover", "incognito"),
    "night": ("nighttime", "night raid", "stealth"),
    "early": ("initial", "beginning", "opening"),
}

# Temporal/descriptive particles stripped before core words are extracted.
PHASE_SUFFIXES: tuple[str, ...] = (
    "的", "时", "装", "服", "期", "常", "日", "夜", "战", "婚", "官", "袍",
    "行动", "官服", " outfit", " attire", " clothes", " clothing", " garb",
    " wear", " time", " period", " phase",
)  # fmt: skip

# Latin-script words never used as core words on their own.
CORE_WORD_STOPWORDS: frozenset[str] = frozenset(
    {"a", "an", "the", "of", "and", "with", "for", "in", "on", "at", "to", "his", "her"}
)

WEAPON_MAX_LENGTH_DIFF = 2
PHASE_MAX_LENGTH_DIFF = 3
CORE_WORD_MIN_LENGTH = 2
CORE_WORD_MAX_LENGTH = 4

TIE_DESCRIPTION_DELIMITER = "; "

# --- Enrichment detail markers -------------------------------------------

VISUAL_DETAIL_MARKERS: tuple[str, ...] = (
    "色", "材质", "质感", "光", "colour", "color", "texture", "material",
    "light", "glow",
)  # fmt: skip
CHARACTER_TEXT_MARKERS: tuple[str, ...] = VISUAL_DETAIL_MARKERS + (
    "动作", "姿态", "posture", "gesture", "gait",
)
APPEARANCE_MARKERS: tuple[str, ...] = VISUAL_DETAIL_MARKERS + (
    "脸型", "眼睛", "发型", "face", "eyes", "hair",
)
ITEM_DETAIL_MARKERS: tuple[str, ...] = (
    "色", "材质", "colour", "color", "material", "steel", "silk", "leather",
    "bronze", "iron", "wood",
)  # fmt: skip
ENVIRONMENT_MARKERS: tuple[str, ...] = (
    "光", "影", "材质", "空间", "布局", "light", "shadow", "material", "space",
    "layout",
)  # fmt: skip
SCENE_TEXT_MARKERS: tuple[str, ...] = ENVIRONMENT_MARKERS + ("时间", "time of day")
ATMOSPHERE_MARKERS: tuple[str, ...] = (
    "氛围", "情绪", "感受", "mood", "feeling", "tension", "atmosphere",
)
