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
import ssl
from typing import Dict, List, Optional

from ldap3 import Server, ServerPool, Connection, Tls, FIRST, NONE, SIMPLE
from ldap3.core.exceptions import LDAPException
from ldap3.utils.config import set_config_parameter

from adauth.config import DirectoryConfiguration
from adauth.ldap.errors import ServerError
from adauth.settings import SERVER_POOL_CYCLES, SERVER_POOL_RETRY_DELAY

# ldap3 waits this many seconds between server pool cycles
set_config_parameter("POOLING_LOOP_TIMEOUT", SERVER_POOL_RETRY_DELAY)


class LDAPConnectionManager:
    """
    Manages one directory connection for a single logical operation.

    The connection is opened unauthenticated; callers bind (and re-bind) as
    needed. Use it as a context manager so it is closed on every exit path.
    """

    def __init__(self, config: DirectoryConfiguration, ca_certs: Optional[str] = None):
        self.config = config
        self.ca_certs = ca_certs or config.certificate or None
        self.server = None
        self.connection = None
        self.bound_user = None

    @property
    def _timeout(self) -> int:
        return max(int(self.config.connection_timeout / 1000), 1)

    def _create_server(self):
        """Create the server pool for all configured hosts."""
        if not self.config.servers:
            raise ServerError("no directory servers configured")

        tls_config = None
        if self.config.tls or self.config.start_tls:
            tls_config = Tls(validate=ssl.CERT_REQUIRED, ca_certs_data=self.ca_certs)

        servers = [
            Server(
                host,
                port=self.config.port,
                use_ssl=self.config.tls,
                tls=tls_config,
                get_info=NONE,
                connect_timeout=self._timeout,
            )
            for host in self.config.servers
        ]
        self.server = ServerPool(servers, FIRST, active=SERVER_POOL_CYCLES, exhaust=True)

    def connect(self):
        """Open the transport, upgrading with StartTLS when configured."""
        if not self.server:
            self._create_server()

        try:
            self.connection = Connection(
                self.server,
                read_only=True,
                raise_exceptions=True,
                receive_timeout=self._timeout,
            )
            self.connection.open()
            if self.config.start_tls and not self.config.tls:
                self.connection.start_tls()
        except LDAPException as e:
            logging.error(f"Failed to connect to LDAP server: {e}")
            self.disconnect()
            raise ServerError("failed to connect to LDAP server", e) from e

    def bind(self, user: str, password: str):
        """Re-bind the open connection as `user`; ldap3 errors propagate."""
        self.bound_user = None
        self.connection.rebind(user=user, password=password, authentication=SIMPLE)
        self.bound_user = user

    def search(self, base: str, search_filter: str, scope: str, attributes: List[str]) -> List[Dict]:
        self.connection.search(
            search_base=base,
            search_filter=search_filter,
            search_scope=scope,
            attributes=attributes,
        )
        return list(self.connection.response or [])

    def search_paged(self, base: str, search_filter: str, scope: str,
                     attributes: List[str], page_size: int) -> List[Dict]:
        return list(self.connection.extend.standard.paged_search(
            search_base=base,
            search_filter=search_filter,
            search_scope=scope,
            attributes=attributes,
            paged_size=page_size,
            generator=False,
        ))

    def disconnect(self):
        """Close LDAP connection."""
        if self.connection:
            try:
                self.connection.unbind()
            except LDAPException as e:
                logging.warning(f"Error while closing LDAP connection: {e}")
            self.connection = None
        self.bound_user = None

    close = disconnect

    def __enter__(self):
        if not self.connection:
            self.connect()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.disconnect()
