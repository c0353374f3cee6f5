from os import environ

import yaml
from dotenv import find_dotenv
from pydantic import ValidationError

from campus_reminder.helpers.config_models.root import RootModel

CONFIG_FILE = "config.yaml"
CONFIG_JSON_ENV = "CONFIG_JSON"
CONFIG_PATH_ENV = "CONFIG_PATH"


def load_config() -> RootModel:
    """
    Load the configuration.

    Sources, first found wins:
    1. JSON from the `CONFIG_JSON` env
    2. YAML file from the `CONFIG_PATH` env
    3. `config.yaml` file, searched from the working directory up to the root
    4. Defaults

    In all cases, values can be overridden by env, e.g. `DATABASE__PATH`.
    """
    # Try to load JSON from env
    if CONFIG_JSON_ENV in environ:
        config = RootModel.model_validate_json(environ[CONFIG_JSON_ENV])
        print(f'Config loaded from env "{CONFIG_JSON_ENV}"')  # noqa: T201
        return config

    path = environ.get(CONFIG_PATH_ENV) or find_dotenv(
        filename=CONFIG_FILE,
        usecwd=True,
    )

    # Local app, running without any file is fine
    if not path:
        print("No config file found, using defaults")  # noqa: T201
        return RootModel()

    with open(
        encoding="utf-8",
        file=path,
    ) as f:
        # Empty file is valid
        config = RootModel.model_validate(yaml.safe_load(f) or {})
    print(f'Config loaded from file "{path}"')  # noqa: T201
    return config


def _format_errors(e: ValidationError) -> str:
    err = "Config values are not valid:"
    for i, error in enumerate(e.errors()):
        err += f"\n{i + 1}. At {'.'.join(str(loc) for loc in error['loc'])}: {error['msg']} (input value: {error['input']})"
    return err


try:
    CONFIG = load_config()
except ValidationError as e:
    raise ValueError(_format_errors(e)) from e
