from fastapi import Depends
from sqlalchemy.orm import Session
from strawberry.fastapi import GraphQLRouter

from receipt_reconciler.api.deps import get_matcher, get_ocr_service
from receipt_reconciler.api.graphql.schema import schema
from receipt_reconciler.core.database import get_db
from receipt_reconciler.services.matching_service import TransactionMatcher
from receipt_reconciler.services.ocr_service import OcrService


def get_context(
    db: Session = Depends(get_db),
    matcher: TransactionMatcher = Depends(get_matcher),
    ocr_service: OcrService = Depends(get_ocr_service),
):
    return {"db": db, "matcher": matcher, "ocr_service": ocr_service}


graphql_router = GraphQLRouter(schema, context_getter=get_context)
