#
#  Copyright 2024 The InfiniFlow Authors. All Rights Reserved.
#
#  Licensed under the Apache License, Version 2.0 (the "License");
#  you may not use this file except in compliance with the License.
#  You may obtain a copy of the License at
#
#      http://www.apache.org/licenses/LICENSE-2.0
#
#  Unless required by applicable law or agreed to in writing, software
#  distributed under the License is distributed on an "AS IS" BASIS,
#  WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
#  See the License for the specific language governing permissions and
#  limitations under the License.
#
import logging
import time
import uuid
from datetime import datetime
from typing import Dict, Optional

from peewee import PeeweeException

from adauth.db.db_models import DB, LDAPConfig
from adauth.config import DirectoryConfiguration


def get_uuid():
    return uuid.uuid1().hex


def current_timestamp():
    return int(time.time() * 1000)


class LDAPConfigService:
    """Service class for managing stored LDAP configuration."""
    model = LDAPConfig

    @classmethod
    @DB.connection_context()
    def get_active_config(cls) -> Optional[DirectoryConfiguration]:
        """Get the first enabled LDAP configuration."""
        try:
            row = cls.model.select().where(cls.model.enabled == True).order_by(cls.model.create_time).first()  # noqa: E712
        except PeeweeException as e:
            logging.exception(f"Failed to get active LDAP config: {e}")
            return None
        return row.to_directory_config() if row else None

    @classmethod
    @DB.connection_context()
    def get_by_id(cls, config_id: str) -> Optional[LDAPConfig]:
        try:
            return cls.model.get_or_none(cls.model.id == config_id)
        except PeeweeException as e:
            logging.exception(f"Failed to get LDAP config {config_id}: {e}")
            return None

    @classmethod
    @DB.connection_context()
    def create_config(cls, config_data: Dict) -> Optional[LDAPConfig]:
        """Create a new LDAP configuration."""
        try:
            now = datetime.now()
            data = dict(config_data)
            data.update({
                'id': get_uuid(),
                'create_time': current_timestamp(),
                'create_date': now,
                'update_time': current_timestamp(),
                'update_date': now
            })
            return cls.model.create(**data)
        except PeeweeException as e:
            logging.exception(f"Failed to create LDAP config: {e}")
            return None

    @classmethod
    @DB.connection_context()
    def update_config(cls, config_id: str, config_data: Dict) -> bool:
        """Update LDAP configuration."""
        try:
            data = dict(config_data)
            data.update({
                'update_time': current_timestamp(),
                'update_date': datetime.now()
            })
            updated_rows = cls.model.update(**data).where(
                cls.model.id == config_id
            ).execute()
            return updated_rows > 0
        except PeeweeException as e:
            logging.exception(f"Failed to update LDAP config {config_id}: {e}")
            return False
