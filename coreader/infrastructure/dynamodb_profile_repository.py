"""DynamoDB implementation of Profile Repository."""

from datetime import datetime
from typing import Optional
from uuid import UUID

from boto3.dynamodb.conditions import Attr, Key

from ..domain.entities.profile import Profile
from ..domain.errors import ProfileConflict
from ..domain.interfaces.profile_repository import ProfileRepository
from .dynamodb_support import DynamoDBRepository, model_to_item, plain

DOCUMENT_INDEX = "document-index"


class DynamoDBProfileRepository(DynamoDBRepository, ProfileRepository):
    """DynamoDB repository for per-document reader profiles.

    Username uniqueness is checked with a query before the put, so two
    concurrent creators of the same name on the same document can both win.
    Generated names carry enough entropy that this has not mattered.
    """

    async def create_profile(self, profile: Profile) -> None:
        async with self._table("create_profile") as table:
            items = await self._query_all(
                table,
                IndexName=DOCUMENT_INDEX,
                KeyConditionExpression=Key("document_id").eq(str(profile.document_id)),
                FilterExpression=Attr("username").eq(profile.username),
            )
            if any(item["id"] != str(profile.id) for item in items):
                raise ProfileConflict(profile.username)

            await table.put_item(Item=model_to_item(profile))

    async def get_profile(self, profile_id: UUID) -> Optional[Profile]:
        async with self._table("get_profile") as table:
            response = await table.get_item(Key={"id": str(profile_id)})

        if "Item" not in response:
            return None
        return Profile.model_validate(plain(response["Item"]))

    async def touch_profile(self, profile_id: UUID, used_at: datetime) -> Optional[Profile]:
        async with self._table("touch_profile") as table:
            response = await table.get_item(Key={"id": str(profile_id)})
            if "Item" not in response:
                return None

            await table.update_item(
                Key={"id": str(profile_id)},
                UpdateExpression="SET last_used_at = :used",
                ExpressionAttributeValues={":used": used_at.isoformat()},
            )

        profile = Profile.model_validate(plain(response["Item"]))
        profile.last_used_at = used_at
        return profile

    async def list_profiles(self, document_id: UUID) -> list[Profile]:
        async with self._table("list_profiles") as table:
            items = await self._query_all(
                table,
                IndexName=DOCUMENT_INDEX,
                KeyConditionExpression=Key("document_id").eq(str(document_id)),
            )

        profiles = [Profile.model_validate(plain(item)) for item in items]
        return sorted(profiles, key=lambda p: p.last_used_at, reverse=True)

    async def delete_expired(self, cutoff: datetime) -> int:
        """Delete profiles last used before ``cutoff``.

        ISO-8601 timestamps in UTC sort lexically, so the scan filter
        compares strings.
        """
        async with self._table("delete_expired") as table:
            items = await self._scan_all(
                table,
                FilterExpression=Attr("last_used_at").lt(cutoff.isoformat()),
                ProjectionExpression="id",
            )
            async with table.batch_writer() as batch:
                for item in items:
                    await batch.delete_item(Key={"id": item["id"]})

        return len(items)
