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
import json

from peewee import (
    BigIntegerField,
    BooleanField,
    CharField,
    DatabaseProxy,
    DateTimeField,
    IntegerField,
    Model,
    TextField,
)
from playhouse.shortcuts import model_to_dict

from adauth.config import DirectoryConfiguration

# 由应用在启动时通过 DB.initialize(database) 绑定具体数据库
DB = DatabaseProxy()


class JSONField(TextField):
    field_type = "LONGTEXT"

    def __init__(self, object_hook=None, object_pairs_hook=None, **kwargs):
        self._object_hook = object_hook
        self._object_pairs_hook = object_pairs_hook
        super().__init__(**kwargs)

    def db_value(self, value):
        if value is None:
            value = []
        return json.dumps(value)

    def python_value(self, value):
        if not value:
            return []
        return json.loads(value, object_hook=self._object_hook, object_pairs_hook=self._object_pairs_hook)


class BaseModel(Model):
    id = CharField(max_length=32, primary_key=True)
    create_time = BigIntegerField(null=True, index=True)
    create_date = DateTimeField(null=True, index=True)
    update_time = BigIntegerField(null=True, index=True)
    update_date = DateTimeField(null=True, index=True)

    def to_dict(self):
        return model_to_dict(self)

    class Meta:
        database = DB


class LDAPConfig(BaseModel):
    """Stored Active Directory provider settings."""

    name = CharField(max_length=128, null=False)
    enabled = BooleanField(default=True, index=True)

    servers = JSONField(null=False, default=list)
    port = IntegerField(default=389)
    tls = BooleanField(default=False)
    start_tls = BooleanField(default=False)
    connection_timeout = IntegerField(default=5000)
    certificate = TextField(null=True)

    service_account_username = CharField(max_length=255, null=True)
    service_account_password = CharField(max_length=255, null=True)
    default_login_domain = CharField(max_length=255, null=True)

    user_search_base = CharField(max_length=512, null=False)
    group_search_base = CharField(max_length=512, null=True)

    user_object_class = CharField(max_length=64, default="person")
    user_name_attribute = CharField(max_length=64, default="name")
    user_login_attribute = CharField(max_length=64, default="sAMAccountName")
    user_search_attribute = CharField(max_length=255, default="sAMAccountName|sn|givenName")
    user_enabled_attribute = CharField(max_length=64, default="userAccountControl")
    user_disabled_bit_mask = IntegerField(default=2)

    group_object_class = CharField(max_length=64, default="group")
    group_name_attribute = CharField(max_length=64, default="name")
    group_search_attribute = CharField(max_length=64, default="sAMAccountName")

    access_mode = CharField(max_length=32, default="unrestricted")
    allowed_principal_ids = JSONField(null=False, default=list)

    verify_service_account = BooleanField(default=False)
    allow_unauthenticated_lookup = BooleanField(default=True)

    def to_directory_config(self) -> DirectoryConfiguration:
        return DirectoryConfiguration.from_dict(self.to_dict())

    class Meta:
        table_name = "ldap_config"
