"""
Diminutive tables for known-name redaction.

A goal written for "William" frequently says "Will" or "Billy"; a roster
entry of "Liz" may appear as "Elizabeth" in the narrative. Both
directions are expanded so the scrubber catches either form.
"""

from __future__ import annotations

# Formal name (lowercase) -> common diminutives
FORMAL_TO_NICKNAMES: dict[str, list[str]] = {
    "abigail": ["abby", "abbie", "gail"],
    "alexander": ["alex", "xander", "al", "sasha"],
    "alexandra": ["alex", "lexi", "sandra", "sasha"],
    "alexis": ["lexi", "alex"],
    "andrew": ["andy", "drew"],
    "anthony": ["tony", "ant"],
    "benjamin": ["ben", "benji", "benny"],
    "catherine": ["cathy", "cat", "kate", "katie"],
    "charles": ["charlie", "chuck", "chaz"],
    "charlotte": ["charlie", "lottie"],
    "christina": ["chris", "tina", "christy"],
    "christopher": ["chris", "topher", "kit"],
    "daniel": ["dan", "danny"],
    "david": ["dave", "davey"],
    "dominic": ["dom", "nic"],
    "edward": ["ed", "eddie", "ted", "ned"],
    "elizabeth": ["liz", "lizzy", "beth", "betsy", "eliza", "ellie"],
    "emily": ["em", "emmy", "millie"],
    "gabriel": ["gabe", "gabi"],
    "gabriella": ["gabby", "ella", "gabi"],
    "isabella": ["bella", "izzy", "isa"],
    "jacob": ["jake", "jay"],
    "james": ["jim", "jimmy", "jamie"],
    "jennifer": ["jen", "jenny"],
    "jessica": ["jess", "jessie"],
    "jonathan": ["jon", "johnny", "nate"],
    "joseph": ["joe", "joey"],
    "joshua": ["josh"],
    "katherine": ["kathy", "kate", "katie", "kat"],
    "kimberly": ["kim", "kimmy"],
    "margaret": ["maggie", "meg", "peggy", "greta"],
    "matthew": ["matt", "matty"],
    "michael": ["mike", "mikey", "mick"],
    "natalie": ["nat", "tali"],
    "nathaniel": ["nate", "nathan", "nat"],
    "nicholas": ["nick", "nicky", "nico"],
    "olivia": ["liv", "livvy", "ollie"],
    "patricia": ["pat", "patty", "trish"],
    "patrick": ["pat", "paddy"],
    "rebecca": ["becca", "becky"],
    "richard": ["rich", "rick", "ricky", "dick"],
    "robert": ["rob", "bob", "bobby", "robbie"],
    "samantha": ["sam", "sammy"],
    "samuel": ["sam", "sammy"],
    "sophia": ["sophie"],
    "stephanie": ["steph"],
    "steven": ["steve", "stevie"],
    "theodore": ["theo", "ted", "teddy"],
    "thomas": ["tom", "tommy"],
    "timothy": ["tim", "timmy"],
    "victoria": ["vicky", "tori"],
    "william": ["will", "bill", "billy", "willy", "liam"],
    "zachary": ["zach", "zack"],
}


def _invert(table: dict[str, list[str]]) -> dict[str, list[str]]:
    inverted: dict[str, list[str]] = {}
    for formal, nicknames in table.items():
        for nickname in nicknames:
            inverted.setdefault(nickname, []).append(formal)
    return inverted


# Diminutive (lowercase) -> formal names it can stand for
NICKNAME_MAP: dict[str, list[str]] = _invert(FORMAL_TO_NICKNAMES)


def name_variants(first_name: str) -> list[str]:
    """
    All alternate forms of a first name, excluding the name itself.

    Args:
        first_name: First name in any case

    Returns:
        Lowercase variants: diminutives of a formal name, formal names
        of a diminutive, and sibling diminutives of those formal names.
    """
    key = first_name.strip().lower()
    if not key:
        return []

    variants: list[str] = []
    for nickname in FORMAL_TO_NICKNAMES.get(key, []):
        variants.append(nickname)
    for formal in NICKNAME_MAP.get(key, []):
        variants.append(formal)
        variants.extend(FORMAL_TO_NICKNAMES[formal])

    seen = {key}
    unique = []
    for variant in variants:
        if variant not in seen:
            seen.add(variant)
            unique.append(variant)
    return unique
