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
"""
登录、查询与搜索流程测试用例

运行测试:
python -m pytest test/ldap_auth_test.py -v
"""

import unittest
from unittest.mock import Mock, patch

from ldap3 import BASE

from adauth.ldap.errors import (
    AmbiguousError,
    InvalidInputError,
    MissingRequiredError,
    NotFoundError,
    ServerError,
    UnauthorizedError,
)
from adauth.ldap.ldap_auth import ActiveDirectoryProvider, AllowListAccessChecker, LDAPAuthenticator
from adauth.ldap.ldap_principal import Principal
from ldap_fakes import (
    SERVICE_ACCOUNT,
    FakeConnection,
    FakeConnectionFactory,
    group_entry,
    invalid_credentials,
    make_config,
    socket_error,
    user_entry,
)

ALICE_DN = "cn=alice,ou=users,dc=example,dc=com"
BOB_DN = "cn=bob,ou=users,dc=example,dc=com"
ADMINS_DN = "cn=admins,ou=groups,dc=example,dc=com"
BOBS_DN = "cn=bobs,ou=groups,dc=example,dc=com"


class TestLoginUser(unittest.TestCase):
    """测试登录流程"""

    def setUp(self):
        self.config = make_config()
        self.access_checker = Mock(return_value=True)

    def provider(self, *connections):
        self.factory = FakeConnectionFactory(*connections)
        return ActiveDirectoryProvider(access_checker=self.access_checker, connection_factory=self.factory)

    def test_login_resolves_user_and_groups(self):
        login_conn = FakeConnection(search_results=[[user_entry(ALICE_DN, "alice", member_of=[ADMINS_DN])]])
        group_conn = FakeConnection(search_results=[[group_entry(ADMINS_DN, "admins")]])
        provider = self.provider(login_conn, group_conn)

        user, groups, metadata = provider.login_user("DOMAIN\\alice", "secret", self.config)

        self.assertEqual(user.id, f"user://{ALICE_DN}")
        self.assertTrue(user.is_self)
        self.assertEqual(len(groups), 1)
        self.assertEqual(groups[0].id, f"group://{ADMINS_DN}")
        self.assertEqual(groups[0].display_name, "admins")
        self.assertTrue(groups[0].is_member_of)
        self.assertEqual(metadata, {})

        self.assertEqual(login_conn.binds, [("DOMAIN\\alice", "secret")])
        base, search_filter, _, _ = login_conn.searches[0]
        self.assertEqual(base, "ou=users,dc=example,dc=com")
        self.assertEqual(search_filter, "(sAMAccountName=alice)")
        self.assertEqual(group_conn.binds, [(SERVICE_ACCOUNT, "svc-secret")])
        self.assertTrue(login_conn.closed)
        self.assertTrue(group_conn.closed)
        self.access_checker.assert_called_once_with("unrestricted", [], user, groups)

    def test_bare_username_bound_with_default_domain(self):
        login_conn = FakeConnection(search_results=[[user_entry(ALICE_DN, "alice")]])
        provider = self.provider(login_conn)

        user, groups, _ = provider.login_user("alice", "secret", self.config)

        self.assertEqual(login_conn.binds, [("EXAMPLE\\alice", "secret")])
        self.assertEqual(groups, [])
        self.assertEqual(len(self.factory.opened), 1)

    def test_login_logs_start(self):
        provider = self.provider(FakeConnection(search_results=[[user_entry(ALICE_DN, "alice")]]))
        with self.assertLogs(level="DEBUG") as logs:
            provider.login_user("alice", "secret", self.config)

        self.assertIn("Starting LDAP login for alice", logs.output[0])
        self.assertFalse(any("token" in line for line in logs.output))

    def test_empty_password_makes_no_bind(self):
        provider = self.provider()
        with self.assertRaises(MissingRequiredError):
            provider.login_user("alice", "", self.config)
        self.assertEqual(self.factory.opened, [])

    def test_service_account_verified_first(self):
        config = make_config(verify_service_account=True)
        login_conn = FakeConnection(search_results=[[user_entry(ALICE_DN, "alice")]])
        provider = self.provider(login_conn)

        provider.login_user("alice", "secret", config)

        self.assertEqual(login_conn.binds, [(SERVICE_ACCOUNT, "svc-secret"), ("EXAMPLE\\alice", "secret")])

    def test_service_account_password_required_when_verifying(self):
        config = make_config(verify_service_account=True, service_account_password="")
        login_conn = FakeConnection()
        provider = self.provider(login_conn)

        with self.assertRaises(MissingRequiredError):
            provider.login_user("alice", "secret", config)
        self.assertEqual(login_conn.binds, [])
        self.assertTrue(login_conn.closed)

    def test_rejected_service_account_is_unauthorized(self):
        config = make_config(verify_service_account=True)
        login_conn = FakeConnection(bind_errors={SERVICE_ACCOUNT: invalid_credentials()})
        provider = self.provider(login_conn)

        with self.assertRaises(UnauthorizedError):
            provider.login_user("alice", "secret", config)

    def test_wrong_password_is_unauthorized(self):
        login_conn = FakeConnection(bind_errors={"EXAMPLE\\alice": invalid_credentials()})
        provider = self.provider(login_conn)

        with self.assertRaises(UnauthorizedError):
            provider.login_user("alice", "wrong", self.config)
        self.assertEqual(login_conn.searches, [])
        self.assertTrue(login_conn.closed)

    def test_bind_server_failure(self):
        login_conn = FakeConnection(bind_errors={"EXAMPLE\\alice": socket_error()})
        provider = self.provider(login_conn)

        with self.assertRaises(ServerError):
            provider.login_user("alice", "secret", self.config)

    def test_user_not_found(self):
        provider = self.provider(FakeConnection(search_results=[[]]))
        with self.assertRaises(NotFoundError):
            provider.login_user("alice", "secret", self.config)

    def test_more_than_one_user(self):
        provider = self.provider(FakeConnection(search_results=[[
            user_entry(ALICE_DN, "alice"),
            user_entry("cn=alice2,ou=users,dc=example,dc=com", "alice"),
        ]]))
        with self.assertRaises(AmbiguousError):
            provider.login_user("alice", "secret", self.config)

    def test_disabled_account_is_permission_denied(self):
        provider = self.provider(FakeConnection(search_results=[[
            user_entry(ALICE_DN, "alice", account_control="514"),
        ]]))
        with self.assertRaises(UnauthorizedError) as ctx:
            provider.login_user("alice", "secret", self.config)
        self.assertEqual(ctx.exception.message, "permission denied")

    def test_group_failure_aborts_login(self):
        login_conn = FakeConnection(search_results=[[user_entry(ALICE_DN, "alice", member_of=[ADMINS_DN])]])
        group_conn = FakeConnection(bind_errors={SERVICE_ACCOUNT: socket_error()})
        provider = self.provider(login_conn, group_conn)

        with self.assertRaises(ServerError):
            provider.login_user("alice", "secret", self.config)
        self.assertTrue(group_conn.closed)
        self.access_checker.assert_not_called()

    def test_degraded_groups_on_rejected_service_account(self):
        login_conn = FakeConnection(search_results=[[user_entry(ALICE_DN, "alice", member_of=[ADMINS_DN])]])
        group_conn = FakeConnection(bind_errors={SERVICE_ACCOUNT: invalid_credentials()})
        provider = self.provider(login_conn, group_conn)

        _, groups, _ = provider.login_user("alice", "secret", self.config)

        self.assertEqual(groups, [Principal.from_dn("group", ADMINS_DN, is_member_of=True)])

    def test_access_denied(self):
        self.access_checker.return_value = False
        provider = self.provider(FakeConnection(search_results=[[user_entry(ALICE_DN, "alice")]]))

        with self.assertRaises(UnauthorizedError) as ctx:
            provider.login_user("alice", "secret", self.config)
        self.assertEqual(ctx.exception.message, "unauthorized")

    def test_access_checker_errors_propagate(self):
        self.access_checker.side_effect = RuntimeError("policy store unavailable")
        provider = self.provider(FakeConnection(search_results=[[user_entry(ALICE_DN, "alice")]]))

        with self.assertRaises(RuntimeError):
            provider.login_user("alice", "secret", self.config)


class TestGetPrincipal(unittest.TestCase):
    """测试按DN查询"""

    def setUp(self):
        self.config = make_config()

    def provider(self, *connections):
        self.factory = FakeConnectionFactory(*connections)
        return ActiveDirectoryProvider(connection_factory=self.factory)

    def test_single_result(self):
        connection = FakeConnection(search_results=[[group_entry(ADMINS_DN, "admins")]])
        principal = self.provider(connection).get_principal(ADMINS_DN, "group", self.config)

        self.assertEqual(principal.id, f"group://{ADMINS_DN}")
        self.assertFalse(principal.is_member_of)
        base, search_filter, scope, _ = connection.searches[0]
        self.assertEqual((base, search_filter, scope), (ADMINS_DN, "(objectClass=group)", BASE))
        self.assertEqual(connection.binds, [(SERVICE_ACCOUNT, "svc-secret")])
        self.assertTrue(connection.closed)

    def test_zero_results(self):
        provider = self.provider(FakeConnection(search_results=[[]]))
        with self.assertRaises(NotFoundError):
            provider.get_principal(ALICE_DN, "user", self.config)

    def test_many_results(self):
        provider = self.provider(FakeConnection(search_results=[[
            user_entry(ALICE_DN, "alice"),
            user_entry(ALICE_DN, "alice"),
        ]]))
        with self.assertRaises(AmbiguousError):
            provider.get_principal(ALICE_DN, "user", self.config)

    def test_invalid_scope(self):
        provider = self.provider()
        with self.assertRaises(InvalidInputError):
            provider.get_principal(ALICE_DN, "team", self.config)
        self.assertEqual(self.factory.opened, [])

    def test_malformed_dn(self):
        provider = self.provider()
        for dn in ("not a dn", ""):
            with self.assertRaises(InvalidInputError):
                provider.get_principal(dn, "user", self.config)
        self.assertEqual(self.factory.opened, [])

    def test_local_precheck_rejects_before_connecting(self):
        factory = FakeConnectionFactory()
        provider = ActiveDirectoryProvider(connection_factory=factory, permission_check=Mock(return_value=False))
        with self.assertRaises(UnauthorizedError):
            provider.get_principal(ALICE_DN, "user", self.config)
        self.assertEqual(factory.opened, [])

    def test_degraded_lookup(self):
        connection = FakeConnection(bind_errors={SERVICE_ACCOUNT: invalid_credentials()})
        principal = self.provider(connection).get_principal(ALICE_DN, "user", self.config)

        self.assertEqual(principal, Principal.from_dn("user", ALICE_DN))
        self.assertEqual(connection.searches, [])

    def test_rejected_service_account_when_authentication_required(self):
        config = make_config(allow_unauthenticated_lookup=False)
        connection = FakeConnection(bind_errors={SERVICE_ACCOUNT: invalid_credentials()})
        with self.assertRaises(UnauthorizedError):
            self.provider(connection).get_principal(ALICE_DN, "user", config)

    def test_disabled_user_is_denied(self):
        connection = FakeConnection(search_results=[[user_entry(ALICE_DN, "alice", account_control="2")]])
        with self.assertRaises(UnauthorizedError):
            self.provider(connection).get_principal(ALICE_DN, "user", self.config)


class TestSearchPrincipals(unittest.TestCase):
    """测试模糊搜索"""

    def setUp(self):
        self.config = make_config()

    def test_users_before_groups(self):
        user_conn = FakeConnection(paged_results=[[user_entry(BOB_DN, "bob")]])
        group_conn = FakeConnection(paged_results=[[group_entry(BOBS_DN, "bobs")]])
        factory = FakeConnectionFactory(user_conn, group_conn)

        principals = ActiveDirectoryProvider(connection_factory=factory).search_principals("bob", None, self.config)

        self.assertEqual(len(principals), 2)
        self.assertEqual(principals[0].id, f"user://{BOB_DN}")
        self.assertEqual(principals[1].id, f"group://{BOBS_DN}")
        self.assertEqual(user_conn.paged_searches[0][0], "ou=users,dc=example,dc=com")
        self.assertEqual(group_conn.paged_searches[0][0], "ou=groups,dc=example,dc=com")
        self.assertTrue(user_conn.closed and group_conn.closed)

    def test_kind_filter(self):
        group_conn = FakeConnection(paged_results=[[group_entry(BOBS_DN, "bobs")]])
        factory = FakeConnectionFactory(group_conn)

        principals = ActiveDirectoryProvider(connection_factory=factory).search_principals("bob", "group", self.config)

        self.assertEqual([p.kind for p in principals], ["group"])
        self.assertEqual(len(factory.opened), 1)

    def test_search_text_is_escaped(self):
        user_conn = FakeConnection()
        factory = FakeConnectionFactory(user_conn)

        ActiveDirectoryProvider(connection_factory=factory).search_principals("*)(cn=*", "user", self.config)

        search_filter = user_conn.paged_searches[0][1]
        self.assertIn("(sAMAccountName=\\2a\\29\\28cn=\\2a*)", search_filter)

    def test_no_deduplication(self):
        user_conn = FakeConnection(paged_results=[[user_entry(BOB_DN, "bob"), user_entry(BOB_DN, "bob")]])
        factory = FakeConnectionFactory(user_conn)
        principals = ActiveDirectoryProvider(connection_factory=factory).search_principals("bob", "user", self.config)
        self.assertEqual(len(principals), 2)

    def test_invalid_type(self):
        with self.assertRaises(InvalidInputError):
            ActiveDirectoryProvider(connection_factory=FakeConnectionFactory()).search_principals(
                "bob", "team", self.config)

    def test_service_account_bind_failure(self):
        user_conn = FakeConnection(bind_errors={SERVICE_ACCOUNT: invalid_credentials()})
        factory = FakeConnectionFactory(user_conn)
        with self.assertRaises(UnauthorizedError):
            ActiveDirectoryProvider(connection_factory=factory).search_principals("bob", "user", self.config)
        self.assertTrue(user_conn.closed)


class TestAllowListAccessChecker(unittest.TestCase):
    """测试访问控制"""

    def setUp(self):
        self.checker = AllowListAccessChecker()
        self.user = Principal.from_dn("user", ALICE_DN)
        self.group = Principal.from_dn("group", ADMINS_DN, is_member_of=True)

    def test_unrestricted(self):
        self.assertTrue(self.checker("unrestricted", [], self.user, []))

    def test_restricted_by_user(self):
        self.assertTrue(self.checker("restricted", [self.user.id], self.user, []))

    def test_required_by_group(self):
        self.assertTrue(self.checker("required", [self.group.id], self.user, [self.group]))

    def test_not_allowed(self):
        self.assertFalse(self.checker("restricted", ["user://cn=other"], self.user, [self.group]))

    def test_unknown_mode(self):
        with self.assertRaises(ServerError):
            self.checker("everyone", [], self.user, [])


class TestLDAPAuthenticator(unittest.TestCase):
    """测试基于存储配置的认证"""

    @patch('adauth.ldap.ldap_auth.LDAPConfigService.get_active_config')
    def test_authenticate_user_no_config(self, mock_get_config):
        mock_get_config.return_value = None
        provider = Mock()

        self.assertIsNone(LDAPAuthenticator(provider).authenticate_user('alice', 'secret'))
        provider.login_user.assert_not_called()

    @patch('adauth.ldap.ldap_auth.LDAPConfigService.get_active_config')
    def test_authenticate_user_disabled(self, mock_get_config):
        mock_get_config.return_value = make_config(enabled=False)
        provider = Mock()

        self.assertIsNone(LDAPAuthenticator(provider).authenticate_user('alice', 'secret'))
        provider.login_user.assert_not_called()

    @patch('adauth.ldap.ldap_auth.LDAPConfigService.get_active_config')
    def test_authenticate_user_success(self, mock_get_config):
        config = make_config()
        mock_get_config.return_value = config
        factory = FakeConnectionFactory(FakeConnection(search_results=[[user_entry(ALICE_DN, "alice")]]))
        authenticator = LDAPAuthenticator(ActiveDirectoryProvider(connection_factory=factory))

        user, groups, _ = authenticator.authenticate_user('alice', 'secret')

        self.assertEqual(user.login_name, "alice")
        self.assertEqual(groups, [])

    @patch('adauth.ldap.ldap_auth.LDAPConfigService.get_active_config')
    def test_unknown_user_looks_like_bad_password(self, mock_get_config):
        mock_get_config.return_value = make_config()
        factory = FakeConnectionFactory(FakeConnection(search_results=[[]]))
        authenticator = LDAPAuthenticator(ActiveDirectoryProvider(connection_factory=factory))

        with self.assertRaises(UnauthorizedError) as ctx:
            authenticator.authenticate_user('alice', 'secret')
        self.assertEqual(ctx.exception.message, "authentication failed")
        self.assertIsInstance(ctx.exception.cause, NotFoundError)


if __name__ == '__main__':
    unittest.main()
