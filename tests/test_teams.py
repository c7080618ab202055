"""Tests for team and campaign loading."""

import json

import pytest

from twibbon.config import PACKAGE_DIR
from twibbon.teams import Team, load_campaign, parse_campaign


class TestTeam:
    def test_rgb(self):
        assert Team(id='onc', name='ONC', color='#EF4444').rgb == (239, 68, 68)

    @pytest.mark.parametrize('color', ['EF4444', '#EF44', '#GG4444', ''])
    def test_rejects_bad_color(self, color):
        with pytest.raises(ValueError):
            Team(id='onc', name='ONC', color=color)

    def test_requires_id_and_name(self):
        with pytest.raises(ValueError):
            Team(id='', name='ONC', color='#EF4444')

    def test_to_dict_hides_asset_name(self):
        team = Team(id='onc', name='ONC', color='#EF4444', frame='01-onc.png', description='ONC team')
        assert team.to_dict() == {'id': 'onc', 'name': 'ONC', 'color': '#EF4444', 'description': 'ONC team'}


class TestCampaign:
    def test_bundled_campaign(self):
        campaign = load_campaign(PACKAGE_DIR / 'teams.json')
        assert campaign.title == 'Twibbonize'
        assert len(campaign.teams) == 12
        assert campaign.team('ban-chi-huy').name == 'Command Board'
        assert campaign.team('nobody') is None

    def test_duplicate_ids_rejected(self):
        raw = {'teams': [{'id': 'a', 'name': 'A', 'color': '#000000'},
                         {'id': 'a', 'name': 'B', 'color': '#FFFFFF'}]}
        with pytest.raises(ValueError):
            parse_campaign(raw)

    def test_unknown_campaign_keys_ignored(self):
        campaign = parse_campaign({'campaign': {'title': 'X', 'theme': 'dark'}, 'teams': []})
        assert campaign.title == 'X'
        assert campaign.teams == ()

    def test_load_from_file(self, tmp_path):
        path = tmp_path / 'teams.json'
        path.write_text(json.dumps({'teams': [{'id': 'a', 'name': 'A', 'color': '#123456'}]}))
        assert [t.id for t in load_campaign(path).teams] == ['a']
