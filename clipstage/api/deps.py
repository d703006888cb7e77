from typing import Annotated

from fastapi import Depends, Request

from clipstage.services.container import ServiceContainer


def get_services(request: Request) -> ServiceContainer:
    return request.app.state.services


Services = Annotated[ServiceContainer, Depends(get_services)]
