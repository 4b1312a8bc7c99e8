"""
Model API Routes
Deleting a trained model (Pro feature).
"""

from fastapi import APIRouter, Depends

from app.api.deps import get_training_workflow, require_pro_user
from app.models.user import User
from app.schemas.images import DeletedResponse
from app.workers.training import TrainingWorkflow

router = APIRouter()


@router.delete("/{model_id}", response_model=DeletedResponse)
async def delete_model(
    model_id: str,
    user: User = Depends(require_pro_user),
    workflow: TrainingWorkflow = Depends(get_training_workflow),
):
    """Delete a finished model with its training photos. Generated images are kept."""
    deleted = await workflow.delete_model(user.id, model_id)
    return DeletedResponse(job_id=model_id, deleted=deleted)
