import configparser
from pathlib import Path

from klondike.Core import DEAL_MODES, GameConfig

SETTINGS_PATH = Path(__file__).with_name("settings.ini")

DEFAULT_SETTINGS = {
    "deal": {
        "mode": "shuffled",
        "seed": "",
        "shuffle_count": "1",
    },
    "solver": {
        "max_iterations": "50000",
        "epsilon": "0.1",
        "max_seconds": "",
    },
}


def _default_settings():
    return {section: dict(values) for section, values in DEFAULT_SETTINGS.items()}


def _as_int(value, default: int, minimum: int) -> str:
    try:
        number = int(value)
    except (TypeError, ValueError):
        return str(default)
    if number < minimum:
        return str(default)
    return str(number)


def _sanitize(settings):
    data = _default_settings()
    if isinstance(settings, dict):
        for section in data:
            values = settings.get(section)
            if isinstance(values, dict):
                data[section].update({k: str(v) for k, v in values.items() if k in data[section]})

    deal = data["deal"]
    if deal["mode"] not in DEAL_MODES:
        deal["mode"] = DEFAULT_SETTINGS["deal"]["mode"]
    if deal["seed"].strip() == "":
        deal["seed"] = ""
    else:
        try:
            deal["seed"] = str(int(deal["seed"]))
        except ValueError:
            deal["seed"] = ""
    deal["shuffle_count"] = _as_int(deal["shuffle_count"], 1, 0)

    solver = data["solver"]
    solver["max_iterations"] = _as_int(solver["max_iterations"], 50000, 1)
    try:
        epsilon = float(solver["epsilon"])
    except ValueError:
        epsilon = float(DEFAULT_SETTINGS["solver"]["epsilon"])
    if not 0.0 <= epsilon <= 1.0:
        epsilon = float(DEFAULT_SETTINGS["solver"]["epsilon"])
    solver["epsilon"] = str(epsilon)
    try:
        max_seconds = float(solver["max_seconds"]) if solver["max_seconds"].strip() else None
    except ValueError:
        max_seconds = None
    solver["max_seconds"] = "" if max_seconds is None or max_seconds <= 0 else str(max_seconds)
    return data


def load_settings(path: Path = None):
    path = SETTINGS_PATH if path is None else Path(path)
    if not path.exists():
        return _default_settings()
    parser = configparser.ConfigParser()
    try:
        parser.read(path, encoding="utf-8")
    except (configparser.Error, OSError, ValueError):
        return _default_settings()
    raw = {}
    for section, values in DEFAULT_SETTINGS.items():
        if section in parser:
            raw[section] = {key: parser[section].get(key, default) for key, default in values.items()}
    return _sanitize(raw)


def save_settings(settings, path: Path = None):
    path = SETTINGS_PATH if path is None else Path(path)
    data = _sanitize(settings)
    parser = configparser.ConfigParser()
    for section, values in data.items():
        parser[section] = values
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("w", encoding="utf-8") as f:
        parser.write(f)


def to_game_config(settings) -> GameConfig:
    deal = _sanitize(settings)["deal"]
    config = GameConfig()
    config.dealMode = deal["mode"]
    config.seed = int(deal["seed"]) if deal["seed"] else None
    config.shuffleCount = int(deal["shuffle_count"])
    return config
