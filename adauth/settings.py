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
from enum import IntEnum

PROVIDER_NAME = "activedirectory"

USER_SCOPE = "user"
GROUP_SCOPE = "group"
SCOPES = (USER_SCOPE, GROUP_SCOPE)

MEMBER_OF_ATTRIBUTE = "memberOf"
OBJECT_CLASS_ATTRIBUTE = "objectClass"
DISTINGUISHED_NAME_ATTRIBUTE = "distinguishedName"

# 每批次查询的组DN数量
GROUP_BATCH_SIZE = 50
# 分页搜索的页大小
SEARCH_PAGE_SIZE = 1000
# 服务器池轮询次数, 全部不可达时抛出异常
SERVER_POOL_CYCLES = 1
# 服务器池两轮之间的等待秒数
SERVER_POOL_RETRY_DELAY = 1

ACCESS_MODE_UNRESTRICTED = "unrestricted"
ACCESS_MODE_RESTRICTED = "restricted"
ACCESS_MODE_REQUIRED = "required"


class RetCode(IntEnum):
    ARGUMENT_ERROR = 101
    DATA_ERROR = 102
    UNAUTHORIZED = 401
    NOT_FOUND = 404
    SERVER_ERROR = 500
