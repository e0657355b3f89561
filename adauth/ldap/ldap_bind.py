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

from ldap3.core.exceptions import LDAPException, LDAPInvalidCredentialsResult
from ldap3.core.results import RESULT_INVALID_CREDENTIALS

from adauth.config import DirectoryConfiguration
from adauth.ldap.errors import ServerError, UnauthorizedError

DOMAIN_SEPARATOR = "\\"


def get_user_external_id(username: str, login_domain: str) -> str:
    """Qualify a bare username with the default login domain."""
    if DOMAIN_SEPARATOR in username:
        return username
    if login_domain:
        return f"{login_domain}{DOMAIN_SEPARATOR}{username}"
    return username


def get_sam_account_name(username: str) -> str:
    """Strip the `DOMAIN\\` prefix; only used to build search filters."""
    if DOMAIN_SEPARATOR in username:
        return username.split(DOMAIN_SEPARATOR, 1)[1]
    return username


def is_invalid_credentials(error: Exception) -> bool:
    if isinstance(error, LDAPInvalidCredentialsResult):
        return True
    return getattr(error, "result", None) == RESULT_INVALID_CREDENTIALS


def bind(connection, external_id: str, secret: str):
    """
    Bind `connection` as `external_id`.

    Raises:
        UnauthorizedError: the directory rejected the credentials.
        ServerError: any other bind failure, with the ldap3 error as cause.
    """
    try:
        connection.bind(external_id, secret)
    except LDAPException as e:
        if is_invalid_credentials(e):
            raise UnauthorizedError("authentication failed", e) from e
        logging.error(f"LDAP bind failed for {external_id}: {e}")
        raise ServerError("server error while authenticating", e) from e


def bind_service_account(connection, config: DirectoryConfiguration):
    external_id = get_user_external_id(config.service_account_username, config.default_login_domain)
    logging.debug(f"Binding service account {external_id}")
    bind(connection, external_id, config.service_account_password)
