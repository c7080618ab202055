"""
How a finished image reaches the user.

Methods are tried in order until one works. Regular browsers start with a
plain download. In-app browsers and webviews often ignore download links, so
they skip it and start with the OS share sheet. Opening the image in a new
tab is the last resort everywhere.
"""

import re

FILENAME_SUFFIX = '-profile-picture.png'

DOWNLOAD = 'download'
SHARE = 'share'
OPEN_IN_NEW_TAB = 'open'


def download_filename(team):
    return re.sub(r'\s+', '-', team.name.lower()) + FILENAME_SUFFIX


def delivery_methods(in_app):
    """Methods to try, in order."""
    if in_app:
        return [SHARE, OPEN_IN_NEW_TAB]
    return [DOWNLOAD, SHARE, OPEN_IN_NEW_TAB]
