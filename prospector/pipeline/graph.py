"""
Pass graph — static declaration of the research passes and their data dependencies.

Resolved once at import. A cyclic graph or a dependency on a key nobody
produces raises ConfigurationError, which stops the process before any
prospect is touched.
"""
import logging
from dataclasses import dataclass
from typing import Dict, List, Tuple, Iterable

from prospector.errors import ConfigurationError

logger = logging.getLogger('pipeline.graph')


@dataclass(frozen=True)
class Pass:
    name: str
    capability: str
    produces: Tuple[str, ...]
    requires: Tuple[str, ...] = ()
    optional: Tuple[str, ...] = ()   # passed when available; orders execution but never causes a skip
    description: str = ''

    @property
    def depends_on(self) -> Tuple[str, ...]:
        return self.requires + self.optional


class PassGraph:
    """Topologically sorted pass declarations with key → producer lookup."""

    def __init__(self, passes: Iterable[Pass]):
        self._passes: Dict[str, Pass] = {}
        self._producers: Dict[str, str] = {}

        for p in passes:
            if p.name in self._passes:
                raise ConfigurationError(f"Duplicate pass name '{p.name}'")
            self._passes[p.name] = p
            for key in p.produces:
                if key in self._producers:
                    raise ConfigurationError(
                        f"Output key '{key}' produced by both '{self._producers[key]}' and '{p.name}'"
                    )
                self._producers[key] = p.name

        for p in self._passes.values():
            for key in p.depends_on:
                if key not in self._producers:
                    raise ConfigurationError(
                        f"Pass '{p.name}' depends on undefined output key '{key}'"
                    )

        self._order = self._toposort()
        logger.debug("Pass order: %s", ' → '.join(p.name for p in self._order))

    def _toposort(self) -> List[Pass]:
        # Kahn's algorithm; ties broken by declaration order so the result is stable
        declared = list(self._passes)
        upstream = {name: self.upstream_of(name) for name in declared}
        indegree = {name: len(deps) for name, deps in upstream.items()}

        order = []
        ready = [name for name in declared if indegree[name] == 0]
        while ready:
            name = ready.pop(0)
            order.append(self._passes[name])
            for other in declared:
                if name in upstream[other]:
                    indegree[other] -= 1
                    if indegree[other] == 0:
                        ready.append(other)
            ready.sort(key=declared.index)

        if len(order) != len(declared):
            stuck = sorted(n for n in declared if indegree[n] > 0)
            raise ConfigurationError(f"Cyclic pass dependencies among: {', '.join(stuck)}")
        return order

    # ── Lookup ────────────────────────────────────────────────────────

    def passes_in_dependency_order(self) -> List[Pass]:
        return list(self._order)

    def names(self) -> List[str]:
        return [p.name for p in self._order]

    def get(self, name: str) -> Pass:
        try:
            return self._passes[name]
        except KeyError:
            raise KeyError(f"Unknown pass '{name}'") from None

    def producer_of(self, key: str) -> str:
        return self._producers[key]

    def upstream_of(self, name: str) -> set:
        """Names of passes producing any key this pass requires or optionally reads."""
        p = self._passes[name]
        return {self._producers[k] for k in p.depends_on} - {name}

    def __contains__(self, name):
        return name in self._passes

    def __len__(self):
        return len(self._passes)


# ── Default research graph ───────────────────────────────────────────────────

DEFAULT_PASSES = [
    Pass(
        name='location_data',
        capability='maps',
        produces=('place_id', 'formatted_address', 'city', 'state', 'phone', 'website',
                  'rating', 'review_count', 'industry', 'has_google_business'),
        description='Google Places lookup — address, phone, category, listing',
    ),
    Pass(
        name='web_research',
        capability='web',
        produces=('website_content', 'has_website', 'social_profiles', 'has_social_media',
                  'email', 'services'),
        optional=('website',),
        description='Firecrawl scrape of the business website',
    ),
    Pass(
        name='reviews_analysis',
        capability='reviews',
        produces=('review_summary', 'average_rating', 'has_online_reviews', 'review_themes'),
        requires=('place_id',),
        description='Google review aggregation by place id',
    ),
    Pass(
        name='supplementary_sources',
        capability='directory',
        produces=('employee_count', 'estimated_revenue', 'years_in_business', 'owner_name',
                  'directory_listings'),
        optional=('city', 'state'),
        description='Perplexity directory research — size, revenue, ownership',
    ),
    Pass(
        name='strategy_generation',
        capability='strategy',
        produces=('competitor_gaps', 'opportunity_areas', 'marketing_strategy'),
        requires=('review_summary',),
        optional=('website_content', 'services', 'employee_count'),
        description='OpenAI competitive-gap and marketing strategy synthesis',
    ),
]

DEFAULT_GRAPH = PassGraph(DEFAULT_PASSES)
