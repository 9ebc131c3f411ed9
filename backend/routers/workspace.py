"""
Nyx Workspace Router
Thin HTTP wrappers over the data store for the dashboard widgets.

Every route is scoped by the ``session_identity`` query parameter.
"""

import logging
from collections import defaultdict
from typing import Annotated, Any, Dict, List, Literal, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, Field

from services.store import ACTIVITY, EXPENSES, NOTES, TASKS, DataStore, get_store, session_scope, utc_now

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api")

SessionIdentity = Annotated[str, Query(min_length=1, max_length=128)]


class TaskCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=200)
    priority: Literal["low", "medium", "high"] = "medium"


class TaskUpdate(BaseModel):
    title: Optional[str] = Field(default=None, min_length=1, max_length=200)
    priority: Optional[Literal["low", "medium", "high"]] = None
    completed: Optional[bool] = None


class NoteCreate(BaseModel):
    content: str = Field(..., min_length=1, max_length=5000)


class ExpenseCreate(BaseModel):
    category: str = Field(..., min_length=1, max_length=100)
    amount: float = Field(..., gt=0)


@router.get("/tasks")
async def list_tasks(session_identity: SessionIdentity, store: DataStore = Depends(get_store)) -> List[Dict[str, Any]]:
    return await store.query(session_scope(TASKS, session_identity))


@router.post("/tasks", status_code=201)
async def create_task(
    body: TaskCreate, session_identity: SessionIdentity, store: DataStore = Depends(get_store)
) -> Dict[str, Any]:
    record = {
        **body.model_dump(),
        "completed": False,
        "session_identity": session_identity,
        "created_at": utc_now(),
    }
    task_id = await store.append(session_scope(TASKS, session_identity), record)
    return {**record, "id": task_id}


@router.patch("/tasks/{task_id}")
async def update_task(
    task_id: str, body: TaskUpdate, session_identity: SessionIdentity, store: DataStore = Depends(get_store)
) -> Dict[str, Any]:
    patch = body.model_dump(exclude_none=True)
    if not patch:
        raise HTTPException(status_code=400, detail="Nothing to update")
    updated = await store.update(session_scope(TASKS, session_identity), task_id, patch)
    if updated is None:
        raise HTTPException(status_code=404, detail="Task not found")
    return updated


@router.get("/notes")
async def list_notes(session_identity: SessionIdentity, store: DataStore = Depends(get_store)) -> List[Dict[str, Any]]:
    return await store.query(session_scope(NOTES, session_identity))


@router.post("/notes", status_code=201)
async def create_note(
    body: NoteCreate, session_identity: SessionIdentity, store: DataStore = Depends(get_store)
) -> Dict[str, Any]:
    record = {"content": body.content, "session_identity": session_identity, "created_at": utc_now()}
    note_id = await store.append(session_scope(NOTES, session_identity), record)
    return {**record, "id": note_id}


@router.get("/expenses")
async def list_expenses(
    session_identity: SessionIdentity, store: DataStore = Depends(get_store)
) -> List[Dict[str, Any]]:
    return await store.query(session_scope(EXPENSES, session_identity))


@router.post("/expenses", status_code=201)
async def create_expense(
    body: ExpenseCreate, session_identity: SessionIdentity, store: DataStore = Depends(get_store)
) -> Dict[str, Any]:
    record = {**body.model_dump(), "session_identity": session_identity, "timestamp": utc_now()}
    expense_id = await store.append(session_scope(EXPENSES, session_identity), record)
    return {**record, "id": expense_id}


@router.get("/expenses/summary")
async def expenses_summary(session_identity: SessionIdentity, store: DataStore = Depends(get_store)) -> Dict[str, Any]:
    """Totals per category, largest first."""
    totals: Dict[str, float] = defaultdict(float)
    for expense in await store.query(session_scope(EXPENSES, session_identity)):
        totals[expense.get("category", "other")] += float(expense.get("amount", 0))
    by_category = [
        {"category": category, "total": round(total, 2)}
        for category, total in sorted(totals.items(), key=lambda item: item[1], reverse=True)
    ]
    return {"total": round(sum(totals.values()), 2), "by_category": by_category}


@router.get("/activity")
async def list_activity(
    session_identity: SessionIdentity,
    limit: int = Query(20, ge=1, le=200),
    store: DataStore = Depends(get_store),
) -> List[Dict[str, Any]]:
    """Newest entries first."""
    entries = await store.query(session_scope(ACTIVITY, session_identity), limit=limit)
    return list(reversed(entries))
