"""
INI configuration loading.

  [tempus]
  timezone = Europe/Amsterdam
  calendar_name = Personal
  output_dir = ~/Calendars

  [google]
  client_id = ...
  client_secret = ...
  calendar_id = primary
  token_file = ~/.local/share/tempus/google-token.json
"""

import logging
from configparser import ConfigParser
from configparser import Error as ConfigParserError
from pathlib import Path

from tempus.models import GoogleConfig
from tempus.models import TempusConfig
from tempus.models import ValidationError

logger = logging.getLogger(__name__)


def _section(parser: ConfigParser, name: str) -> dict[str, str]:
    if name not in parser:
        return {}
    return {k: v.strip() for k, v in parser[name].items() if v.strip()}


def load_config(config_path: Path) -> TempusConfig:
    """Read ``config_path``; a missing file yields the defaults."""
    cfg = TempusConfig()
    if not config_path.exists():
        logger.debug("No config file at %s, using defaults", config_path)
        return cfg

    parser = ConfigParser()
    try:
        parser.read(config_path)
    except ConfigParserError as e:
        raise ValidationError(f"Invalid config file {config_path}: {e}") from e

    general = _section(parser, "tempus")
    cfg.timezone = general.get("timezone", cfg.timezone)
    cfg.calendar_name = general.get("calendar_name", cfg.calendar_name)
    if "output_dir" in general:
        cfg.output_dir = Path(general["output_dir"]).expanduser()

    google = _section(parser, "google")
    g = GoogleConfig()
    for key in (
        "client_id",
        "client_secret",
        "calendar_id",
        "device_endpoint",
        "token_endpoint",
        "calendar_base_url",
        "scope",
    ):
        if key in google:
            setattr(g, key, google[key])
    if "token_file" in google:
        g.token_file = Path(google["token_file"]).expanduser()
    if "timeout" in google:
        try:
            g.timeout = float(google["timeout"])
        except ValueError:
            raise ValidationError(
                f"Invalid [google] timeout in {config_path}: {google['timeout']!r}"
            ) from None
    cfg.google = g
    return cfg
