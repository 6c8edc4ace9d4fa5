"""Builds the bounded context window from ranked search results."""

from collections.abc import Sequence

from ..domain import DocumentUsage, RetrievalOutcome, SearchResult
from ..domain.utils import clean_text

DEFAULT_DELIMITER = "\n\n"


class ContextAssembler:
    """Concatenates ranked chunks until the length budget is reached."""

    def __init__(self, delimiter: str = DEFAULT_DELIMITER) -> None:
        self.delimiter = delimiter

    def assemble(
        self,
        results: Sequence[SearchResult],
        max_context_length: int,
        query: str = "",
    ) -> RetrievalOutcome:
        """Assemble a context block from already-ranked results.

        Each chunk is counted together with its delimiter. Assembly stops at the
        first chunk that would push the total past ``max_context_length``;
        partial chunks are never included.

        Args:
            results: Search results in rank order.
            max_context_length: Character budget for the context (must be positive).
            query: Query the results belong to, echoed in the outcome.

        Returns:
            RetrievalOutcome with the context and its provenance.

        Raises:
            ValueError: If max_context_length is not positive.
        """
        if max_context_length <= 0:
            raise ValueError("max_context_length must be positive")

        chunks: list[str] = []
        used: list[DocumentUsage] = []
        length = 0

        for result in results:
            chunk = clean_text(result.content, normalize=False)
            # each chunk is charged for its delimiter, including the last one
            cost = len(chunk) + len(self.delimiter)
            if length + cost > max_context_length:
                break
            chunks.append(chunk)
            length += cost
            used.append(
                DocumentUsage(
                    id=result.id,
                    similarity=result.similarity,
                    collection_name=result.collection_name,
                )
            )

        context = self.delimiter.join(chunks).strip()
        return RetrievalOutcome(
            context=context,
            context_length=len(context),
            documents_used=used,
            total_documents_found=len(results),
            query=query,
        )
