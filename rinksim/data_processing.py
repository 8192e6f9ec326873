# rinksim/data_processing.py
"""
Serialization of game results for storage layers: JSON payloads and flat
DataFrames. Nothing here talks to a database.
"""
import datetime
import json
from enum import Enum

import numpy as np
import pandas as pd

from .boxscore import build_boxscore
from .events import EVENT_SCHEMA_VERSION, GameEvent, GameResult


class CustomEncoder(json.JSONEncoder):
    """
    Custom JSON encoder to handle special data types like NumPy's and pandas DataFrames.
    """
    def default(self, obj):
        if isinstance(obj, np.integer):
            return int(obj)
        if isinstance(obj, np.floating):
            return float(obj)
        if isinstance(obj, np.bool_):
            return bool(obj)
        if isinstance(obj, np.ndarray):
            return obj.tolist()
        if isinstance(obj, pd.DataFrame):
            return obj.to_dict(orient='records')
        if isinstance(obj, Enum):
            return obj.value
        if isinstance(obj, datetime.datetime):
            return obj.isoformat()
        return super(CustomEncoder, self).default(obj)


def result_to_dict(result: GameResult, include_boxscore=True) -> dict:
    payload = {
        'schema_version': result.schema_version,
        'seed': result.seed,
        'final_state': dict(result.final_state),
        'events': [e.to_dict() for e in result.events],
    }
    if include_boxscore:
        payload['boxscore'] = {
            'players': result.boxscore.players,
            'goalies': result.boxscore.goalies,
            'teams': result.boxscore.teams,
        }
    return payload


def result_to_json(result: GameResult, include_boxscore=True, **kwargs) -> str:
    return json.dumps(result_to_dict(result, include_boxscore), cls=CustomEncoder, **kwargs)


def result_from_json(payload) -> GameResult:
    """
    Rebuilds a GameResult from `result_to_json` output. The boxscore is
    re-derived from the events rather than trusted from the payload.
    """
    data = json.loads(payload) if isinstance(payload, str) else payload
    version = data.get('schema_version')
    if version != EVENT_SCHEMA_VERSION:
        raise ValueError(f"Unsupported event schema version {version!r} (expected {EVENT_SCHEMA_VERSION})")
    events = [GameEvent.from_dict(e) for e in data['events']]
    return GameResult(
        events=events,
        final_state=data['final_state'],
        boxscore=build_boxscore(events),
        seed=data.get('seed'),
        schema_version=version,
    )


def events_to_dataframe(events) -> pd.DataFrame:
    """One row per event; the detail payload is flattened into `detail_*` columns."""
    rows = []
    for event in events:
        row = event.to_dict()
        detail = row.pop('detail')
        for key, value in detail.items():
            if isinstance(value, (dict, list)):
                value = json.dumps(value, cls=CustomEncoder)
            row[f'detail_{key}'] = value
        rows.append(row)
    return pd.DataFrame(rows)


def flatten_batch_results(results: dict) -> dict:
    """JSON-ready view of `run_multiple_simulations` output."""
    return json.loads(json.dumps(results, cls=CustomEncoder))
