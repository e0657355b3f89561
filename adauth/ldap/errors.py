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
from typing import Optional

from adauth.settings import RetCode


class DirectoryError(Exception):
    """Base class for classified directory failures."""

    code = RetCode.SERVER_ERROR

    def __init__(self, message: str, cause: Optional[BaseException] = None):
        super().__init__(message)
        self.message = message
        self.cause = cause

    def __str__(self):
        if self.cause is not None:
            return f"{self.message}: {self.cause}"
        return self.message


class MissingRequiredError(DirectoryError):
    code = RetCode.ARGUMENT_ERROR


class InvalidInputError(DirectoryError):
    code = RetCode.ARGUMENT_ERROR


class UnauthorizedError(DirectoryError):
    code = RetCode.UNAUTHORIZED


class NotFoundError(DirectoryError):
    code = RetCode.NOT_FOUND


class AmbiguousError(DirectoryError):
    code = RetCode.DATA_ERROR


class ServerError(DirectoryError):
    code = RetCode.SERVER_ERROR
