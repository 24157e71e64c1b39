"""Keyword rule matching for comment text.

Rule syntax: comma separates OR-groups, plus separates AND-terms inside a
group. ``"vps+cheap,dedicated"`` matches text containing both "vps" and
"cheap", or text containing "dedicated". Matching is case-insensitive
substring matching with whitespace around terms ignored.
"""

from typing import List


def parse_rule(rule: str) -> List[List[str]]:
    """Split a rule into OR-groups of lowercased AND-terms.

    Blank terms are dropped, so a group may come back empty.
    """
    groups = []
    for group in (rule or "").split(","):
        terms = [term.strip().lower() for term in group.split("+")]
        groups.append([term for term in terms if term])
    return groups


class KeywordFilter:
    """Matches text against a keyword rule.

    Example:
        >>> KeywordFilter("a+b,c").match("A and B")
        True
        >>> KeywordFilter("a+b,c").match("just a")
        False
    """

    def __init__(self, rule: str):
        self.rule = rule or ""
        self._groups = parse_rule(self.rule)

    def match(self, text: str) -> bool:
        if not self.rule.strip():
            return False

        haystack = (text or "").lower()
        for terms in self._groups:
            # A group with no usable terms never matches
            if terms and all(term in haystack for term in terms):
                return True
        return False
