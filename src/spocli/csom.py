"""Montagem de requisições CSOM (client.svc/ProcessQuery)."""

CSOM_NAMESPACE = "http://schemas.microsoft.com/sharepoint/clientquery/2009"
APPLICATION_NAME = "spocli"
TENANT_TYPE_ID = "{268004ae-ef6b-4e9b-8425-127220d84719}"
TENANT_CONSTRUCTOR = f'<Constructor Id="3" TypeId="{TENANT_TYPE_ID}" />'

_XML_ESCAPES = {
    "&": "&amp;",
    "<": "&lt;",
    ">": "&gt;",
    '"': "&quot;",
    "'": "&apos;",
}


def escape_xml(value) -> str:
    """Escapa caracteres especiais para valores em XML."""
    return "".join(_XML_ESCAPES.get(char, char) for char in str(value))


def build_request(actions: str, object_paths: str = "") -> str:
    """
    Monta o envelope de uma requisição CSOM.

    Args:
        actions: Conteúdo do elemento <Actions>
        object_paths: Conteúdo do elemento <ObjectPaths>

    Returns:
        XML da requisição
    """
    body = (
        '<Request AddExpandoFieldTypeSuffix="true" SchemaVersion="15.0.0.0" '
        f'LibraryVersion="16.0.0.0" ApplicationName="{APPLICATION_NAME}" '
        f'xmlns="{CSOM_NAMESPACE}"><Actions>{actions}</Actions>'
    )
    if object_paths:
        body += f"<ObjectPaths>{object_paths}</ObjectPaths>"
    else:
        body += "<ObjectPaths />"
    return body + "</Request>"


def format_identity(identity: str) -> str:
    """Prepara o _ObjectIdentity_ retornado pelo servidor para reenvio."""
    return escape_xml(identity).replace("\n", "&#xA;")


def parameter(type_name: str, value) -> str:
    """Monta um elemento <Parameter>."""
    if isinstance(value, bool):
        value = "true" if value else "false"
    return f'<Parameter Type="{type_name}">{escape_xml(value)}</Parameter>'


def operation_status_query(identity: str) -> str:
    """Consulta IsComplete/PollingInterval de uma SpoOperation pela identidade."""
    return build_request(
        '<Query Id="188" ObjectPathId="184"><Query SelectAllProperties="false">'
        "<Properties>"
        '<Property Name="IsComplete" ScalarProperty="true" />'
        '<Property Name="PollingInterval" ScalarProperty="true" />'
        "</Properties></Query></Query>",
        f'<Identity Id="184" Name="{format_identity(identity)}" />',
    )


def operation_query(action_id: int, object_path_id: int) -> str:
    """Query de status para a operação criada por um método do Tenant."""
    return (
        f'<Query Id="{action_id}" ObjectPathId="{object_path_id}">'
        '<Query SelectAllProperties="false"><Properties>'
        '<Property Name="IsComplete" ScalarProperty="true" />'
        '<Property Name="PollingInterval" ScalarProperty="true" />'
        "</Properties></Query></Query>"
    )


def tenant_method(method_id: int, name: str, parameters: str = "") -> str:
    """Método chamado sobre o construtor do Tenant (Id 3)."""
    if parameters:
        return (
            f'<Method Id="{method_id}" ParentId="3" Name="{name}">'
            f"<Parameters>{parameters}</Parameters></Method>"
        )
    return f'<Method Id="{method_id}" ParentId="3" Name="{name}" />'
