"""Destination that logs every record; handy for trying out a source."""
import json
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from syncline.ingestion.types import Destination, DestinationContext

logger = logging.getLogger(__name__)


class StdoutDestination(Destination):
    name = "stdout"

    def __init__(self, options: Optional[Dict[str, Any]] = None):
        self.options = options or {}

    async def write(
        self,
        source: str,
        stream: str,
        records: List[Any],
        retrieved_at: datetime,
        context: DestinationContext,
    ) -> None:
        for record in records:
            logger.info(json.dumps({
                "job": context.job_id,
                "source": source,
                "stream": stream,
                "retrieved_at": retrieved_at.isoformat(),
                "record": record,
            }, default=str))
