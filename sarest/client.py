# -*- coding: utf-8 -*-
"""
Database client interface

The request handler only talks to the database through a DbClient. The arguments of the calls
follow the Prisma client conventions, eg.

    await client.find_many("post", {"where": {"published": {"equals": True}}, "orderBy": [{"title": "asc"}], "skip": 0, "take": 10})

Results are plain dicts (or lists of dicts) holding the selected fields and relations.
Failures are raised as DbError subclasses (cfr. errors.py).
"""

import abc
from typing import Any, Dict, List, Optional


class DbClient(abc.ABC):
    """
    Abstract database client, the type names are the registry names (eg. "postLike")
    """

    @abc.abstractmethod
    async def find_unique(self, type_name: str, args: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        """
        :param args: {"where": id filter, "select"|"include": ...}
        :return: the item or None
        """

    @abc.abstractmethod
    async def find_many(self, type_name: str, args: Dict[str, Any]) -> List[Dict[str, Any]]:
        """
        :param args: {"where", "orderBy", "skip", "take", "select"|"include"}
        """

    @abc.abstractmethod
    async def create(self, type_name: str, args: Dict[str, Any]) -> Dict[str, Any]:
        """
        :param args: {"data": fields and nested relation writes, "select"|"include"}
        """

    @abc.abstractmethod
    async def update(self, type_name: str, args: Dict[str, Any]) -> Dict[str, Any]:
        """
        :param args: {"where": id filter, "data", "select"|"include"}
        :raises KnownRequestError: code P2025 when the item doesn't exist
        """

    @abc.abstractmethod
    async def delete(self, type_name: str, args: Dict[str, Any]) -> Dict[str, Any]:
        """
        :param args: {"where": id filter}
        :raises KnownRequestError: code P2025 when the item doesn't exist
        """

    @abc.abstractmethod
    async def count(self, type_name: str, args: Dict[str, Any]) -> int:
        """
        :param args: {"where"}
        """
