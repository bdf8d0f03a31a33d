"""
QGroundControl plan importer

Reads a .plan file (JSON) into an ordered MissionPlan of raw mission items.
"""

import json
import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Dict, List, Union

from .models import MissionItem, MissionPlan, Position

logger = logging.getLogger(__name__)

PLAN_FILE_TYPE = "Plan"


class PlanImportError(Exception):
    """Raised when a plan file cannot be turned into a mission"""
    pass


class PlanImporter(ABC):
    """File to mission-item sequence"""

    @abstractmethod
    def import_plan(self, path: Union[str, Path]) -> MissionPlan:
        """
        Import a plan file

        Raises:
            PlanImportError: If the file is missing or malformed
        """
        pass


class QgcPlanImporter(PlanImporter):
    """
    Importer for QGroundControl .plan files

    Handles SimpleItem entries and transect-style ComplexItems
    (survey, corridor scan, structure scan), whose generated
    simple items are inlined in order.
    """

    def import_plan(self, path: Union[str, Path]) -> MissionPlan:
        path = Path(path)

        try:
            with open(path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except FileNotFoundError:
            raise PlanImportError(f"plan file not found: {path}")
        except IsADirectoryError:
            raise PlanImportError(f"plan path is a directory: {path}")
        except OSError as e:
            raise PlanImportError(f"cannot read {path}: {e}")
        except UnicodeDecodeError as e:
            raise PlanImportError(f"{path} is not UTF-8 text: {e}")
        except json.JSONDecodeError as e:
            raise PlanImportError(f"invalid JSON in {path}: {e}")

        plan = self.parse(data)
        plan.source = str(path)

        logger.info(f"Imported {len(plan)} mission items from {path}")
        return plan

    def parse(self, data: Any) -> MissionPlan:
        """
        Convert decoded plan JSON into a MissionPlan

        Args:
            data: Decoded JSON document

        Returns:
            MissionPlan with items numbered from 0

        Raises:
            PlanImportError: If the document is not a valid plan
        """
        if not isinstance(data, dict):
            raise PlanImportError("plan document must be a JSON object")

        if data.get("fileType") != PLAN_FILE_TYPE:
            raise PlanImportError(f"unsupported fileType '{data.get('fileType')}'")

        mission = data.get("mission")
        if not isinstance(mission, dict):
            raise PlanImportError("plan has no 'mission' section")

        items_data = mission.get("items")
        if not isinstance(items_data, list):
            raise PlanImportError("mission 'items' must be a list")

        simple_items: List[Dict[str, Any]] = []
        for i, item in enumerate(items_data):
            simple_items.extend(self._flatten(i, item))

        items = []
        for seq, item_data in enumerate(simple_items):
            items.append(self._convert(seq, item_data))

        return MissionPlan(
            items=items,
            planned_home=self._planned_home(mission.get("plannedHomePosition")),
        )

    def _flatten(self, index: int, item: Any) -> List[Dict[str, Any]]:
        """Expand one top-level plan item into simple items"""
        if not isinstance(item, dict):
            raise PlanImportError(f"item {index}: expected an object")

        item_type = item.get("type")

        if item_type == "SimpleItem":
            return [item]

        if item_type == "ComplexItem":
            transect = item.get("TransectStyleComplexItem")
            if not isinstance(transect, dict) or not isinstance(transect.get("Items"), list):
                raise PlanImportError(
                    f"item {index}: unsupported complex item "
                    f"'{item.get('complexItemType')}'"
                )
            nested = []
            for sub in transect["Items"]:
                nested.extend(self._flatten(index, sub))
            return nested

        raise PlanImportError(f"item {index}: unknown item type '{item_type}'")

    def _convert(self, seq: int, item: Dict[str, Any]) -> MissionItem:
        try:
            return MissionItem.from_params(
                seq=seq,
                frame=int(item["frame"]),
                command=int(item["command"]),
                params=item["params"],
                autocontinue=bool(item.get("autoContinue", True)),
                current=(seq == 0),
            )
        except KeyError as e:
            raise PlanImportError(f"item {seq}: missing required field {e}")
        except (TypeError, ValueError, OverflowError) as e:
            raise PlanImportError(f"item {seq}: {e}")

    @staticmethod
    def _planned_home(value: Any):
        if isinstance(value, list) and len(value) == 3:
            try:
                return Position(lat=float(value[0]), lon=float(value[1]),
                                rel_alt=float(value[2]))
            except (TypeError, ValueError):
                return None
        return None
