"""文本相似度算法

- 归一化：小写、去首尾空白、去标点、合并空白
- Levenshtein 相似度：1 - 编辑距离 / 较长串长度
- Jaro-Winkler 相似度：滑动窗口匹配 + 换位 + 前缀加成（最多 4 个字符，系数 0.1）
- 词频余弦相似度：长文本描述使用（不做 IDF 加权）

全部为纯函数。
"""

import math
import re
from collections import Counter

from rapidfuzz.distance import Levenshtein

_PUNCTUATION_RE = re.compile(r"[^\w\s]")
_WHITESPACE_RE = re.compile(r"\s+")

# Jaro-Winkler 前缀加成参数
JARO_WINKLER_PREFIX_SCALE = 0.1
JARO_WINKLER_MAX_PREFIX = 4

# 分词时丢弃长度 <= 2 的词
MIN_TOKEN_LENGTH = 3


def normalize_text(text: str) -> str:
    """归一化文本用于比较"""
    text = text.lower().strip()
    text = _PUNCTUATION_RE.sub("", text)
    return _WHITESPACE_RE.sub(" ", text)


def levenshtein_distance(s1: str, s2: str) -> int:
    """编辑距离（插入 / 删除 / 替换代价均为 1）"""
    return Levenshtein.distance(s1, s2)


def levenshtein_similarity(s1: str, s2: str) -> float:
    """归一化 Levenshtein 相似度，两个空串视为完全相同"""
    max_len = max(len(s1), len(s2))
    if max_len == 0:
        return 1.0
    return 1.0 - levenshtein_distance(s1, s2) / max_len


def jaro_winkler_similarity(s1: str, s2: str) -> float:
    """Jaro-Winkler 相似度

    匹配窗口为 floor(max(len1, len2) / 2) - 1，窗口为负时返回 0。
    """
    if s1 == s2:
        return 1.0

    len1, len2 = len(s1), len(s2)
    if len1 == 0 or len2 == 0:
        return 0.0

    match_window = max(len1, len2) // 2 - 1
    if match_window < 0:
        return 0.0

    s1_matches = [False] * len1
    s2_matches = [False] * len2
    matches = 0

    for i in range(len1):
        start = max(0, i - match_window)
        end = min(i + match_window + 1, len2)
        for j in range(start, end):
            if s2_matches[j] or s1[i] != s2[j]:
                continue
            s1_matches[i] = True
            s2_matches[j] = True
            matches += 1
            break

    if matches == 0:
        return 0.0

    # 统计换位
    transpositions = 0
    k = 0
    for i in range(len1):
        if not s1_matches[i]:
            continue
        while not s2_matches[k]:
            k += 1
        if s1[i] != s2[k]:
            transpositions += 1
        k += 1

    jaro = (
        matches / len1
        + matches / len2
        + (matches - transpositions / 2) / matches
    ) / 3

    prefix = 0
    for i in range(min(len1, len2, JARO_WINKLER_MAX_PREFIX)):
        if s1[i] != s2[i]:
            break
        prefix += 1

    return jaro + JARO_WINKLER_PREFIX_SCALE * prefix * (1 - jaro)


def tokenize(text: str) -> list[str]:
    """归一化后按空白切分，丢弃过短的词"""
    return [w for w in normalize_text(text).split() if len(w) >= MIN_TOKEN_LENGTH]


def term_frequency_cosine(text1: str, text2: str) -> float:
    """词频向量余弦相似度

    词表为两个文档的并集，词频 = 出现次数 / 文档词数；任一向量范数为 0 时返回 0。
    """
    words1 = tokenize(text1)
    words2 = tokenize(text2)
    if not words1 or not words2:
        return 0.0

    counts1 = Counter(words1)
    counts2 = Counter(words2)
    vocabulary = counts1.keys() | counts2.keys()

    total1 = len(words1)
    total2 = len(words2)
    dot = 0.0
    norm1 = 0.0
    norm2 = 0.0
    for word in vocabulary:
        tf1 = counts1[word] / total1
        tf2 = counts2[word] / total2
        dot += tf1 * tf2
        norm1 += tf1 * tf1
        norm2 += tf2 * tf2

    if norm1 == 0 or norm2 == 0:
        return 0.0
    return min(1.0, dot / (math.sqrt(norm1) * math.sqrt(norm2)))
