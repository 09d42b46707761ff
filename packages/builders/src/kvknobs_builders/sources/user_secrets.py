"""Builder backed by a user secrets file.

The secrets file lives outside the project tree so development secrets
never get committed. Its format::

    <root>
      <secrets ver="1.0">
        <secret name="secret1" value="foo" />
      </secrets>
    </root>
"""

import logging
import os
import re
import xml.etree.ElementTree as ET
from typing import List, Tuple

from ..builder import KeyValueConfigBuilder
from ..exceptions import BuilderOptionError
from ..options import BuilderOptions, KeyValueEnabled
from ..utils import map_path
from .values import CaseInsensitiveValues

logger = logging.getLogger(__name__)

USER_SECRETS_FILE_TAG = "userSecretsFile"
USER_SECRETS_ID_TAG = "userSecretsId"

SECRETS_FILE_NAME = "secrets.xml"

# Characters that cannot appear in a directory name on common platforms
_INVALID_ID_CHARS = re.compile(r'[<>:"/\\|?*\x00-\x1f]')


def secrets_file_from_id(secrets_id: str) -> str | None:
    """Locate the secrets file for a user secrets id.

    ``$APPDATA`` is tried first, then ``$HOME``.

    Raises:
        BuilderOptionError: If the id contains characters not allowed in paths
    """
    bad = _INVALID_ID_CHARS.search(secrets_id)
    if bad is not None:
        raise BuilderOptionError(
            f"Invalid character '{bad.group(0)}' in '{USER_SECRETS_ID_TAG}'",
            context={"option": USER_SECRETS_ID_TAG, "value": secrets_id},
        )

    app_data = os.environ.get("APPDATA")
    if app_data and app_data.strip():
        return os.path.join(app_data, "Microsoft", "UserSecrets", secrets_id, SECRETS_FILE_NAME)

    home = os.environ.get("HOME")
    if home and home.strip():
        return os.path.join(home, ".microsoft", "usersecrets", secrets_id, SECRETS_FILE_NAME)

    return None


class UserSecretsConfigBuilder(KeyValueConfigBuilder):
    """Supplies values from a user secrets file. Optional unless configured otherwise.

    Options:
        userSecretsFile: Explicit path to the secrets file; wins over the id
        userSecretsId: Id used to locate the file in the user's profile
    """

    DEFAULT_ENABLED = KeyValueEnabled.OPTIONAL

    def __init__(self) -> None:
        super().__init__()
        self.user_secrets_id: str | None = None
        self.user_secrets_file: str | None = None
        self._secrets = CaseInsensitiveValues()

    def lazy_initialize(self, name: str, options: BuilderOptions) -> None:
        super().lazy_initialize(name, options)

        secrets_file = self.resolve_setting(USER_SECRETS_FILE_TAG)
        if not secrets_file or not secrets_file.strip():
            self.user_secrets_id = self.resolve_setting(USER_SECRETS_ID_TAG)
            if not self.user_secrets_id or not self.user_secrets_id.strip():
                raise BuilderOptionError(
                    f"One of '{USER_SECRETS_FILE_TAG}' or '{USER_SECRETS_ID_TAG}' must be specified",
                    context={"options": [USER_SECRETS_FILE_TAG, USER_SECRETS_ID_TAG]},
                )
            secrets_file = secrets_file_from_id(self.user_secrets_id.strip())

        self.user_secrets_file = map_path(secrets_file, self.config_root)
        if self.user_secrets_file is None or not os.path.isfile(self.user_secrets_file):
            raise FileNotFoundError(f"Secrets file does not exist: {self.user_secrets_file}")

        self._secrets = read_user_secrets(self.user_secrets_file)
        logger.debug("Builder '%s' read %d secrets", name, len(self._secrets))

    def get_value(self, key: str) -> str | None:
        return self._secrets.get(key)

    def get_all_values(self, prefix: str) -> List[Tuple[str, str | None]]:
        return self._secrets.with_prefix(prefix)


def read_user_secrets(path: str) -> CaseInsensitiveValues:
    """Read every ``<secret>`` of the first ``<secrets>`` element in a file."""
    secrets = CaseInsensitiveValues()
    root = ET.parse(path).getroot()
    container = root if root.tag == "secrets" else root.find(".//secrets")
    if container is None:
        return secrets

    for element in container.iter("secret"):
        name = element.get("name")
        if name is not None:
            secrets.add(name, element.get("value"))
    return secrets
