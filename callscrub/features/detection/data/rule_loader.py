import json
import logging
import re
from pathlib import Path
from typing import Optional, Union

from callscrub.core.config.settings import settings
from callscrub.core.exceptions import ConfigurationError
from ..domain.models import PatternRule, RuleSet
from .validators import VALIDATORS

logger = logging.getLogger(__name__)

DEFAULT_RULES_PATH = Path(__file__).resolve().parent / "default_rules.json"


def load_rule_set(path: Optional[Union[str, Path]] = None) -> RuleSet:
    """
    Loads and compiles the redaction rule file.
    Resolution order: explicit path -> REDACTION_RULES_PATH -> bundled defaults.
    """
    rules_path = Path(path or settings.REDACTION_RULES_PATH or DEFAULT_RULES_PATH)

    try:
        document = json.loads(rules_path.read_text(encoding="utf-8"))
    except OSError as e:
        raise ConfigurationError(f"Cannot read rule file {rules_path}: {e}", cause=e) from e
    except json.JSONDecodeError as e:
        raise ConfigurationError(f"Rule file {rules_path} is not valid JSON: {e}", cause=e) from e

    rule_set = parse_rule_set(document)
    logger.info(f"Loaded redaction rules v{rule_set.version} from {rules_path.name}: {', '.join(rule_set.categories)}")
    return rule_set


def parse_rule_set(document: dict) -> RuleSet:
    if not isinstance(document, dict) or "version" not in document or "rules" not in document:
        raise ConfigurationError("Rule document must contain 'version' and 'rules'.")

    rules = []
    for i, entry in enumerate(document["rules"]):
        category = entry.get("category")
        pattern = entry.get("pattern")
        if not category or not pattern:
            raise ConfigurationError(f"Rule #{i} needs both 'category' and 'pattern'.")

        validator = entry.get("validator")
        if validator is not None and validator not in VALIDATORS:
            raise ConfigurationError(f"Rule '{category}' references unknown validator '{validator}'.")

        try:
            regex = re.compile(pattern)
        except re.error as e:
            raise ConfigurationError(f"Rule '{category}' has an invalid pattern: {e}", cause=e) from e

        rules.append(PatternRule(
            category=category,
            regex=regex,
            validator=validator,
            description=entry.get("description", "")
        ))

    return RuleSet(
        version=str(document["version"]),
        rules=rules,
        min_confidence=float(document.get("min_confidence", 0.0)),
        mask_template=document.get("mask_template", "[REDACTED {label}]")
    )
