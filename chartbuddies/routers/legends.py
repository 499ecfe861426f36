# chartbuddies/routers/legends.py
from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session
from typing import List

from .. import crud, schemas, security, models
from ..database import get_db

router = APIRouter(
    tags=["Legends"],
    dependencies=[Depends(security.get_current_profile)],
    responses={404: {"description": "Not found"}},
)


@router.get("/legends", response_model=List[schemas.LegendResponse])
def read_legend(
    db: Session = Depends(get_db),
    current_user: models.UserProfile = Depends(security.get_current_profile)
):
    """Built-in chart codes followed by the caller's own."""
    return crud.legend_for(db, current_user)


@router.post("/legends", response_model=schemas.LegendResponse, status_code=status.HTTP_201_CREATED)
def create_legend(
    legend: schemas.LegendCreate,
    db: Session = Depends(get_db),
    current_user: models.UserProfile = Depends(security.get_current_profile)
):
    db_legend = crud.create_legend(db, current_user, legend)
    crud.create_audit_log(
        db=db, user_id=current_user.id, action="CREATE", category="LEGEND",
        resource_type="mar_custom_legend", resource_id=db_legend.id, details=f"Added legend {db_legend.code}"
    )
    return db_legend


@router.put("/legends/{legend_id}", response_model=schemas.LegendResponse)
def update_legend(
    legend_id: str,
    legend_update: schemas.LegendUpdate,
    db: Session = Depends(get_db),
    current_user: models.UserProfile = Depends(security.get_current_profile)
):
    db_legend = crud.update_legend(db, current_user, legend_id, legend_update)
    crud.create_audit_log(
        db=db, user_id=current_user.id, action="UPDATE", category="LEGEND",
        resource_type="mar_custom_legend", resource_id=legend_id, details=f"Updated legend {db_legend.code}"
    )
    return db_legend


@router.delete("/legends/{legend_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_legend(
    legend_id: str,
    db: Session = Depends(get_db),
    current_user: models.UserProfile = Depends(security.get_current_profile)
):
    crud.delete_legend(db, current_user, legend_id)
    crud.create_audit_log(
        db=db, user_id=current_user.id, action="DELETE", category="LEGEND",
        resource_type="mar_custom_legend", resource_id=legend_id, details="Deleted legend"
    )
    return
