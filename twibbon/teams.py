"""
Teams and campaign texts, loaded once from a JSON file at startup.
"""

import json
import logging
import re
from dataclasses import dataclass, field

logger = logging.getLogger(__name__)

_HEX_COLOR = re.compile(r'^#[0-9a-fA-F]{6}$')


@dataclass(frozen=True)
class Team:
    id: str
    name: str
    color: str
    frame: str = None  # asset filename inside the frames directory
    description: str = None

    def __post_init__(self):
        if not self.id or not self.name:
            raise ValueError("Team needs an id and a name")
        if not _HEX_COLOR.match(self.color):
            raise ValueError(f"Team {self.id}: color must be #RRGGBB, got {self.color!r}")

    @property
    def rgb(self):
        c = self.color.lstrip('#')
        return int(c[0:2], 16), int(c[2:4], 16), int(c[4:6], 16)

    def to_dict(self):
        return {'id': self.id, 'name': self.name, 'color': self.color, 'description': self.description}


@dataclass(frozen=True)
class Campaign:
    title: str = 'Twibbonize'
    subtitle: str = ''
    year: str = ''
    footer: str = ''
    share_text: str = ''
    teams: tuple = field(default_factory=tuple)

    def team(self, team_id):
        for t in self.teams:
            if t.id == team_id:
                return t
        return None


def parse_campaign(raw):
    info = raw.get('campaign', {})
    teams = tuple(Team(**t) for t in raw.get('teams', []))
    ids = [t.id for t in teams]
    if len(ids) != len(set(ids)):
        raise ValueError("Team ids must be unique")
    known = {'title', 'subtitle', 'year', 'footer', 'share_text'}
    return Campaign(teams=teams, **{k: v for k, v in info.items() if k in known})


def load_campaign(path):
    with open(path, encoding='utf-8') as f:
        raw = json.load(f)
    campaign = parse_campaign(raw)
    logger.info(f"✅ Loaded {len(campaign.teams)} teams from {path}")
    return campaign
