from __future__ import annotations

import configparser
import logging
import os
import random
from dataclasses import dataclass
from typing import Optional

from .exceptions import EloquentValidationException

_logger = logging.getLogger(__name__)

CONFIG_SECTION = 'collection'
SORT_DIRECTIONS = ('asc', 'desc')


@dataclass(frozen=True)
class Policy:
    """Defaults applied by Collection methods when the caller omits them.

    per_page: default page size for paginate()
    separator: default join() separator
    sort_direction: 'asc' | 'desc', default direction for sort()
    random_seed: when set, shuffle()/random() draw from a seeded generator
    """
    per_page: int = 20
    separator: str = ", "
    sort_direction: str = "asc"  # 'asc' | 'desc'
    random_seed: Optional[int] = None

    def __post_init__(self):
        if self.per_page < 1:
            raise EloquentValidationException(message=f'per_page must be >= 1, got {self.per_page}')
        if self.sort_direction not in SORT_DIRECTIONS:
            raise EloquentValidationException(
                message=f'sort_direction must be one of {SORT_DIRECTIONS}, got {self.sort_direction!r}')

    def new_random(self) -> random.Random:
        return random.Random(self.random_seed)

    @staticmethod
    def from_config(source: str | os.PathLike | configparser.ConfigParser | None = None) -> 'Policy':
        """
        Build a Policy from the [collection] section of an ini style file.

        A missing file or section gives the defaults.

        :param source: path to the file, or an already loaded ConfigParser.
        :return: the resulting Policy.
        """
        if isinstance(source, configparser.ConfigParser):
            config_data = source
        else:
            config_data = configparser.ConfigParser()
            if source is not None:
                read = config_data.read(source)
                if not read:
                    _logger.debug(f"Config file {source} not found, using default policy")

        if not config_data.has_section(CONFIG_SECTION):
            return Policy()

        section = config_data[CONFIG_SECTION]
        try:
            seed = section.get('random_seed', fallback=None)
            return Policy(
                per_page=section.getint('per_page', fallback=Policy.per_page),
                separator=section.get('separator', fallback=Policy.separator),
                sort_direction=section.get('sort_direction', fallback=Policy.sort_direction).strip().lower(),
                random_seed=int(seed) if seed not in (None, '') else None,
            )
        except ValueError as e:
            raise EloquentValidationException(message=f'Invalid [{CONFIG_SECTION}] configuration: {e}')


DEFAULT_POLICY = Policy()
