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
from dataclasses import replace
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from ldap3.core.exceptions import LDAPInvalidDnError
from ldap3.utils.dn import parse_dn

from adauth.config import DirectoryConfiguration
from adauth.db.services.ldap_service import LDAPConfigService
from adauth.ldap.errors import (
    AmbiguousError,
    InvalidInputError,
    MissingRequiredError,
    NotFoundError,
    ServerError,
    UnauthorizedError,
)
from adauth.ldap.ldap_bind import bind, bind_service_account, get_user_external_id
from adauth.ldap.ldap_conn import LDAPConnectionManager
from adauth.ldap.ldap_groups import GroupResolver, SkipPolicy, map_entries
from adauth.ldap.ldap_principal import Principal, has_permission, is_type, to_principal
from adauth.ldap.ldap_query import (
    SearchQuery,
    group_text_query,
    object_query,
    user_login_query,
    user_text_query,
)
from adauth.ldap.ldap_search import RawEntry, make_attributes, search
from adauth.settings import (
    ACCESS_MODE_REQUIRED,
    ACCESS_MODE_RESTRICTED,
    ACCESS_MODE_UNRESTRICTED,
    GROUP_SCOPE,
    MEMBER_OF_ATTRIBUTE,
    SCOPES,
    USER_SCOPE,
)

LoginResult = Tuple[Principal, List[Principal], Dict[str, str]]


class AllowListAccessChecker:
    """Grants access when the user or one of its groups is on the allow list."""

    def __call__(self, access_mode: str, allowed_principal_ids: Sequence[str],
                 user: Principal, groups: Sequence[Principal]) -> bool:
        if access_mode == ACCESS_MODE_UNRESTRICTED:
            return True
        if access_mode in (ACCESS_MODE_RESTRICTED, ACCESS_MODE_REQUIRED):
            allowed = set(allowed_principal_ids)
            if user.id in allowed:
                return True
            return any(group.id in allowed for group in groups)
        raise ServerError(f"unsupported access mode {access_mode}")


class ActiveDirectoryProvider:
    """
    Login, principal lookup and principal search against an Active Directory.

    Collaborators are injected so the provider itself holds no per-call state:
        access_checker: callable(access_mode, allowed_ids, user, groups) -> bool
        connection_factory: callable(config, ca_certs) -> connection context manager
        permission_check: callable(attributes, config) -> bool
    """

    def __init__(self, access_checker: Optional[Callable] = None,
                 connection_factory: Callable = LDAPConnectionManager,
                 permission_check: Callable = has_permission):
        self.access_checker = access_checker or AllowListAccessChecker()
        self.connection_factory = connection_factory
        self.permission_check = permission_check

    def login_user(self, username: str, password: str, config: DirectoryConfiguration,
                   ca_certs: Optional[str] = None) -> LoginResult:
        """
        Authenticate `username` and resolve its principals.

        Returns:
            Tuple of (user principal with is_self set, group principals, metadata)
        """
        logging.debug(f"Starting LDAP login for {username}")
        if not password:
            raise MissingRequiredError("password not provided")
        external_id = get_user_external_id(username, config.default_login_domain)

        with self.connection_factory(config, ca_certs) as connection:
            if config.verify_service_account:
                logging.debug("Bind service account username password")
                if not config.service_account_password:
                    raise MissingRequiredError("service account password not provided")
                bind_service_account(connection, config)

            logging.debug("Binding username password")
            bind(connection, external_id, password)

            query = user_login_query(username, config)
            logging.debug(f"LDAP Search query: {{{query.filter}}}")
            entry = self._single_entry(connection, query, f"Cannot locate user information for {query.filter}")

        user_principal, member_of = self._user_principal(entry, config)
        logging.debug(f"SearchResult memberOf attribute {member_of}")

        group_principals = []
        if member_of:
            with self.connection_factory(config, ca_certs) as connection:
                resolver = GroupResolver(config, permission_check=self.permission_check)
                group_principals = resolver.resolve(member_of, connection)

        allowed = self.access_checker(config.access_mode, list(config.allowed_principal_ids),
                                      user_principal, group_principals)
        if not allowed:
            raise UnauthorizedError("unauthorized")

        return user_principal, group_principals, {}

    def get_principal(self, distinguished_name: str, scope: str, config: DirectoryConfiguration,
                      ca_certs: Optional[str] = None) -> Principal:
        if scope not in SCOPES:
            raise InvalidInputError("invalid scope")

        rdn_attributes = self._dn_attributes(distinguished_name)
        object_class = config.user_object_class if scope == USER_SCOPE else config.group_object_class
        if not is_type(rdn_attributes, object_class) and not self.permission_check(rdn_attributes, config):
            logging.error(f"Failed to get object {distinguished_name}")
            raise UnauthorizedError(f"permission denied for {distinguished_name}")

        with self.connection_factory(config, ca_certs) as connection:
            try:
                bind_service_account(connection, config)
            except UnauthorizedError:
                if not config.allow_unauthenticated_lookup:
                    raise
                logging.warning(f"Service account bind rejected, returning {distinguished_name} without lookup")
                return Principal.from_dn(scope, distinguished_name)

            query = object_query(distinguished_name, scope, config)
            logging.debug(f"Query for get_principal({distinguished_name}): {query.filter}")
            entry = self._single_entry(connection, query, "No identities can be retrieved")

        if not self.permission_check(entry.attributes, config):
            raise UnauthorizedError("permission denied")

        principal = to_principal(entry.attributes, distinguished_name, scope, config)
        if principal is None:
            raise NotFoundError(f"principal not returned for {distinguished_name}")
        return principal

    def search_principals(self, text: str, principal_type: Optional[str], config: DirectoryConfiguration,
                          ca_certs: Optional[str] = None) -> List[Principal]:
        """Free-text search; user matches come before group matches."""
        if principal_type and principal_type not in SCOPES:
            raise InvalidInputError(f"invalid principal type {principal_type}")

        principals = []
        if not principal_type or principal_type == USER_SCOPE:
            query = user_text_query(text, config)
            logging.debug(f"LDAPProvider searchUser query: {query.filter}")
            principals.extend(self._search_ldap(query, USER_SCOPE, config, ca_certs))

        if not principal_type or principal_type == GROUP_SCOPE:
            query = group_text_query(text, config)
            logging.debug(f"LDAPProvider searchGroup query: {query.filter}")
            principals.extend(self._search_ldap(query, GROUP_SCOPE, config, ca_certs))

        return principals

    def _search_ldap(self, query: SearchQuery, scope: str, config: DirectoryConfiguration,
                     ca_certs: Optional[str]) -> List[Principal]:
        with self.connection_factory(config, ca_certs) as connection:
            bind_service_account(connection, config)
            entries = search(connection, query, paged=True)
        return map_entries(entries, scope, config, SkipPolicy(), permission_check=None)

    def _single_entry(self, connection, query: SearchQuery, not_found_message: str) -> RawEntry:
        entries = search(connection, query)
        if len(entries) < 1:
            raise NotFoundError(not_found_message)
        if len(entries) > 1:
            raise AmbiguousError("ldap search found more than one result")
        return entries[0]

    def _user_principal(self, entry: RawEntry, config: DirectoryConfiguration) -> Tuple[Principal, List[str]]:
        if not self.permission_check(entry.attributes, config):
            raise UnauthorizedError("permission denied")

        principal = to_principal(entry.attributes, entry.dn, USER_SCOPE, config)
        if principal is None or principal.kind != USER_SCOPE:
            raise NotFoundError(f"{entry.dn} is not a user entry")
        return replace(principal, is_self=True), entry.values(MEMBER_OF_ATTRIBUTE)

    @staticmethod
    def _dn_attributes(distinguished_name: str):
        try:
            components = parse_dn(distinguished_name)
        except LDAPInvalidDnError as e:
            raise InvalidInputError(f"invalid distinguished name {distinguished_name}", e) from e
        if not components:
            raise InvalidInputError("distinguished name not provided")

        values = {}
        for attr_type, attr_value, _ in components:
            values.setdefault(attr_type, []).append(attr_value)
        return make_attributes(values)


class LDAPAuthenticator:
    """Handles LDAP authentication with the active stored configuration."""

    def __init__(self, provider: Optional[ActiveDirectoryProvider] = None):
        self.provider = provider or ActiveDirectoryProvider()

    def get_config(self) -> Optional[DirectoryConfiguration]:
        """Get active LDAP configuration."""
        return LDAPConfigService.get_active_config()

    def authenticate_user(self, username: str, password: str) -> Optional[LoginResult]:
        """
        Authenticate user against LDAP.

        Unknown and ambiguous users are reported as UnauthorizedError, the same
        as a wrong password.

        Returns:
            The login result, or None when no LDAP configuration is enabled.
        """
        config = self.get_config()
        if not config or not config.enabled:
            logging.warning("LDAP authentication skipped: no enabled configuration")
            return None

        try:
            return self.provider.login_user(username, password, config)
        except (NotFoundError, AmbiguousError) as e:
            logging.warning(f"LDAP user lookup failed for {username}: {e}")
            raise UnauthorizedError("authentication failed", e) from e
        except UnauthorizedError:
            logging.warning(f"Invalid credentials for user {username}")
            raise
