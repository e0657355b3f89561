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
Active Directory 认证模块

提供基于LDAP的用户认证与身份解析，支持：
- 服务账号与用户凭据两阶段绑定
- 用户所属组的批量解析（服务账号不可用时降级）
- 目录属性到 Principal 的映射
- 用户/组的分页模糊搜索
"""

from .errors import (
    AmbiguousError,
    DirectoryError,
    InvalidInputError,
    MissingRequiredError,
    NotFoundError,
    ServerError,
    UnauthorizedError,
)
from .ldap_auth import ActiveDirectoryProvider, AllowListAccessChecker, LDAPAuthenticator
from .ldap_conn import LDAPConnectionManager
from .ldap_groups import GroupResolver, SkipPolicy
from .ldap_principal import EntryKind, Principal

__all__ = [
    'ActiveDirectoryProvider',
    'AllowListAccessChecker',
    'LDAPAuthenticator',
    'LDAPConnectionManager',
    'GroupResolver',
    'SkipPolicy',
    'EntryKind',
    'Principal',
    'DirectoryError',
    'MissingRequiredError',
    'InvalidInputError',
    'UnauthorizedError',
    'NotFoundError',
    'AmbiguousError',
    'ServerError',
]
