from typing import Any, Dict
from src.domain.models import PLACEHOLDER_AVATAR_URL, UNKNOWN_OWNER, RepositoryEntity

class GitHubTranslator:
    """
    Anti-corruption layer that translates raw GitHub REST search items into RepositoryEntity instances.
    """

    @staticmethod
    def to_domain(raw_item: Dict[str, Any], keyword: str) -> RepositoryEntity:
        """
        Transforms a raw item from GitHub's /search/repositories response into a RepositoryEntity.

        Args:
            raw_item (Dict[str, Any]): One element of the response's "items" array.
            keyword (str): The search keyword that produced this item.

        Returns:
            RepositoryEntity: The domain model instance representing the repository.
        """

        # Owner can be null for some deleted/ghost accounts
        owner_data = raw_item.get('owner') or {}

        return RepositoryEntity(
            external_id=raw_item.get('id'),
            name=raw_item.get('name', ''),
            full_name=raw_item.get('full_name', ''),
            description=raw_item.get('description'),
            url=raw_item.get('html_url', ''),
            star_count=raw_item.get('stargazers_count') or 0,
            fork_count=raw_item.get('forks_count') or 0,
            primary_language=raw_item.get('language'),
            owner_login=owner_data.get('login') or UNKNOWN_OWNER,
            owner_avatar_url=owner_data.get('avatar_url') or PLACEHOLDER_AVATAR_URL,
            search_keyword=keyword.strip(),
        )
