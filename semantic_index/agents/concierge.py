"""
Concierge - retrieval-augmented answers over the business directory.
Free-text query -> retrieval -> numbered context block -> chat completion.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from ..core import config
from ..core.errors import InvalidQueryError
from ..core.schema import QueryFilters
from ..util.logging import logger
from ..vector.embeddings import EmbeddingProvider
from ..vector.retrieval import RetrievalEngine

SYSTEM_PROMPT = " ".join([
    "Eres el asistente del directorio de negocios para Republica Dominicana.",
    "Responde de forma profesional, cercana y breve.",
    "Entiendes contexto local como colmado, concho, pica pollo y geografia de RD.",
    "Cuando recomiendes negocios, cita solo los negocios del contexto recuperado.",
])

NO_MATCHES_PLACEHOLDER = "No se recuperaron negocios relevantes."


@dataclass
class ConciergeMatch:
    id: str
    name: str
    slug: str
    address: str
    score: float
    whatsapp: Optional[str]
    latitude: Optional[float]
    longitude: Optional[float]
    link: str


@dataclass
class ConciergeAnswer:
    answer: str
    matches: List[ConciergeMatch]
    meta: Dict[str, Any] = field(default_factory=dict)


def build_context(matches: List[ConciergeMatch]) -> str:
    """One numbered paragraph per match, in rank order."""
    return "\n\n".join(
        f"{index + 1}. {entry.name}\n"
        f"Direccion: {entry.address}\n"
        f"WhatsApp: {entry.whatsapp or 'No disponible'}\n"
        f"Perfil: {entry.link}\n"
        f"Afinidad: {entry.score}"
        for index, entry in enumerate(matches)
    )


def build_user_prompt(query: str, context: str) -> str:
    return "\n".join([
        f"Consulta del usuario: {query}",
        "",
        "Negocios recuperados:",
        context or NO_MATCHES_PLACEHOLDER,
        "",
        "Genera una respuesta util con recomendaciones priorizadas y siguiente accion.",
    ])


class ConciergeService:
    """Answers directory questions grounded in retrieved businesses."""

    def __init__(self, provider: EmbeddingProvider, retrieval: RetrievalEngine, web_base_url: Optional[str] = None):
        self.provider = provider
        self.retrieval = retrieval
        self.web_base_url = (web_base_url or config.get_public_web_url()).rstrip("/")

    def profile_link(self, slug: str) -> str:
        return f"{self.web_base_url}/businesses/{slug}"

    async def ask(self, query: str, filters: Optional[QueryFilters] = None) -> ConciergeAnswer:
        normalized_query = (query or "").strip()
        if not normalized_query:
            raise InvalidQueryError("La consulta no puede estar vacia")

        filters = filters or QueryFilters()
        query_vector = await self.provider.create_embedding(normalized_query)
        retrieval = await self.retrieval.search(query_vector, filters)

        matches = [
            ConciergeMatch(
                id=entry.business_id,
                name=entry.name,
                slug=entry.slug,
                address=entry.address,
                score=round(entry.score, 4),
                whatsapp=entry.whatsapp,
                latitude=entry.latitude,
                longitude=entry.longitude,
                link=self.profile_link(entry.slug),
            )
            for entry in retrieval.matches
        ]

        answer = await self.provider.generate_chat_completion(
            SYSTEM_PROMPT,
            build_user_prompt(normalized_query, build_context(matches)),
        )

        logger.log_operation("concierge.ask", "success", {
            "source": retrieval.source,
            "matches": len(matches),
            "provider": self.provider.provider_name(),
        })

        return ConciergeAnswer(
            answer=answer,
            matches=matches,
            meta={
                "source": retrieval.source,
                "query": normalized_query,
                "providerName": self.provider.provider_name(),
            },
        )
