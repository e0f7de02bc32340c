"""
Policy risk taxonomy.

Keys are SECTION_SUBCATEGORY. Weights feed the overall risk score.
"""

from typing import Dict, List

POLICY_CATEGORIES: Dict[str, Dict[str, str]] = {
    "CONTENT_SAFETY": {
        "VIOLENCE": "Violence & Graphic Content",
        "DANGEROUS_ACTS": "Dangerous Acts & Challenges",
        "HARMFUL_CONTENT": "Harmful or Dangerous Content",
        "CHILD_SAFETY": "Child Safety",
    },
    "COMMUNITY_STANDARDS": {
        "HARASSMENT": "Harassment & Cyberbullying",
        "HATE_SPEECH": "Hate Speech",
        "SPAM": "Spam, Deceptive Practices & Scams",
        "MISINFORMATION": "Misinformation",
    },
    "ADVERTISER_FRIENDLY": {
        "SEXUAL_CONTENT": "Sexual Content",
        "PROFANITY": "Profanity & Inappropriate Language",
        "CONTROVERSIAL": "Controversial or Sensitive Topics",
        "BRAND_SAFETY": "Brand Safety Issues",
    },
    "LEGAL_COMPLIANCE": {
        "COPYRIGHT": "Copyright & Intellectual Property",
        "PRIVACY": "Privacy & Personal Information",
        "TRADEMARK": "Trademark Violations",
        "LEGAL_REQUESTS": "Legal Requests & Compliance",
    },
    "MONETIZATION": {
        "AD_POLICIES": "Ad-Friendly Content Guidelines",
        "SPONSORED_CONTENT": "Sponsored Content Disclosure",
        "MONETIZATION_ELIGIBILITY": "Monetization Eligibility",
    },
}

# Subcategory -> weight; anything not listed weighs 1.0
CATEGORY_WEIGHTS = {
    "VIOLENCE": 2.0,
    "HARMFUL_CONTENT": 2.0,
    "HATE_SPEECH": 2.0,
    "CHILD_SAFETY": 2.0,
    "HARASSMENT": 2.0,
    "DANGEROUS_ACTS": 1.5,
    "SEXUAL_CONTENT": 1.5,
    "PRIVACY": 1.5,
    "MONETIZATION_ELIGIBILITY": 1.5,
}

CONTENT_TYPES = [
    "Gaming", "Educational", "Entertainment", "News", "Music", "Comedy",
    "Tutorial", "Review", "Vlog", "Documentary", "Sports", "Technology",
    "Fashion", "Cooking", "Travel", "General",
]

TARGET_AUDIENCES = [
    "General Audience", "Children", "Teens", "Adults",
    "Family", "Educational", "Professional", "Entertainment",
]


def all_category_keys() -> List[str]:
    return [
        f"{section}_{sub}"
        for section, subs in POLICY_CATEGORIES.items()
        for sub in subs
    ]


def category_description(key: str) -> str:
    for section, subs in POLICY_CATEGORIES.items():
        prefix = f"{section}_"
        if key.startswith(prefix) and key[len(prefix):] in subs:
            return subs[key[len(prefix):]]
    return key.replace("_", " ").title()


def category_weight(key: str) -> float:
    for sub, weight in CATEGORY_WEIGHTS.items():
        if key == sub or key.endswith(f"_{sub}"):
            return weight
    return 1.0


DEFAULT_TAXONOMY: List[str] = all_category_keys()
